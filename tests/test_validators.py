from __future__ import annotations

import pytest

from roadmap_store.errors import ImmutableFieldViolation, InvariantViolation, RoadmapValidationError
from roadmap_store.models import Action, ActionStatus, Feature, ProposedFeature, Roadmap
from roadmap_store.validators import (
    MergeStatus,
    merge_features,
    validate_action_sequence,
    validate_feature_sequence,
    validate_roadmap,
)


def _proposal(number: str, title: str, description: str, *actions: tuple[str, str]) -> ProposedFeature:
    return ProposedFeature.model_validate(
        {
            "number": number,
            "title": title,
            "description": description,
            "actions": [{"number": n, "description": d} for n, d in actions],
        }
    )


@pytest.fixture
def existing() -> Roadmap:
    return Roadmap(
        features=[
            Feature(
                number="1",
                title="Auth",
                description="Login system",
                actions=[Action(number="1.01", description="Build form", status=ActionStatus.COMPLETED)],
            )
        ]
    )


def test_action_sequence_reports_every_problem() -> None:
    actions = [Action(number=n, description="x") for n in ("1.01", "1.01", "2.01", "bad")]
    codes = [issue.code for issue in validate_action_sequence(actions, feature_number="1")]
    assert codes == ["DUPLICATE_ACTION_NUMBER", "ACTION_FEATURE_MISMATCH", "INVALID_FORMAT"]


def test_feature_sequence_detects_cross_feature_duplicates() -> None:
    features = [
        _proposal("1", "A", "a", ("1.01", "x")),
        _proposal("1", "B", "b", ("1.02", "y")),
        _proposal("2", "C", "c", ("1.02", "z")),
    ]
    codes = [issue.code for issue in validate_feature_sequence(features)]
    assert "DUPLICATE_FEATURE_NUMBER" in codes
    assert "DUPLICATE_ACTION_NUMBER_GLOBAL" in codes
    assert "ACTION_FEATURE_MISMATCH" in codes


def test_malformed_feature_number_still_checks_its_actions() -> None:
    features = [
        _proposal("1", "A", "a", ("1.01", "x")),
        _proposal("x", "B", "b", ("bad", "y"), ("1.01", "z")),
    ]
    issues = validate_feature_sequence(features)
    assert [issue.code for issue in issues] == ["INVALID_FORMAT", "INVALID_FORMAT", "DUPLICATE_ACTION_NUMBER_GLOBAL"]
    assert "ACTION_FEATURE_MISMATCH" not in [issue.code for issue in issues]


def test_validate_roadmap_accepts_well_formed_tree(existing: Roadmap) -> None:
    assert validate_roadmap(existing) == []


def test_merge_into_nothing_creates_pending_sorted_tree() -> None:
    outcome = merge_features(
        None,
        [
            _proposal("10", "Later", "later", ("10.01", "z")),
            _proposal("2", "Billing", "invoices", ("2.10", "b"), ("2.02", "a")),
        ],
    )
    roadmap = outcome.unwrap()

    assert [feature.number for feature in roadmap.features] == ["2", "10"]
    assert [action.number for action in roadmap.features[0].actions] == ["2.02", "2.10"]
    assert {action.status for action in roadmap.iter_actions()} == {ActionStatus.PENDING}
    assert outcome.added_features == ["10", "2"]


def test_merge_appends_new_actions_and_skips_existing(existing: Roadmap) -> None:
    outcome = merge_features(
        existing,
        [_proposal("1", "Auth", "Login system", ("1.02", "Validate"), ("1.01", "Renamed but ignored"))],
    )
    roadmap = outcome.unwrap()
    actions = roadmap.features[0].actions

    assert [(a.number, a.description, a.status) for a in actions] == [
        ("1.01", "Build form", ActionStatus.COMPLETED),
        ("1.02", "Validate", ActionStatus.PENDING),
    ]
    assert outcome.added_actions == ["1.02"]
    assert outcome.skipped_actions == ["1.01"]
    assert len(existing.features[0].actions) == 1


def test_merge_is_idempotent(existing: Roadmap) -> None:
    proposal = [_proposal("2", "Billing", "invoices", ("2.01", "a"))]
    once = merge_features(existing, proposal).unwrap()
    twice = merge_features(once, proposal).unwrap()
    assert once == twice


def test_merge_rejects_changed_immutable_fields(existing: Roadmap) -> None:
    outcome = merge_features(existing, [_proposal("1", "Authentication", "Login system", ("1.02", "x"))])
    assert outcome.status is MergeStatus.IMMUTABLE_FIELD
    assert outcome.roadmap is None

    with pytest.raises(ImmutableFieldViolation) as excinfo:
        outcome.unwrap()
    message = excinfo.value.issues[0].message
    assert 'Existing title: "Auth"' in message
    assert 'Proposed title: "Authentication"' in message
    assert len(existing.features[0].actions) == 1


def test_merge_input_issues_are_aggregated() -> None:
    outcome = merge_features(
        None,
        [
            _proposal("1", " ", "desc", ("1.01", "")),
            _proposal("2", "Title", "desc"),
            _proposal("x", "Title", "desc", ("x.01", "a")),
        ],
    )
    assert outcome.status is MergeStatus.INVALID_INPUT
    codes = [issue.code for issue in outcome.issues]
    assert codes.count("EMPTY_TEXT") == 2
    assert "NO_ACTIONS" in codes
    assert "INVALID_FORMAT" in codes
    with pytest.raises(RoadmapValidationError):
        outcome.unwrap()


def test_merge_rejects_empty_proposal() -> None:
    outcome = merge_features(None, [])
    assert [issue.code for issue in outcome.issues] == ["NO_FEATURES"]


def test_merge_reports_invariant_violation_for_corrupted_tree() -> None:
    corrupted = Roadmap(
        features=[
            Feature(
                number="1",
                title="Auth",
                description="Login",
                actions=[Action(number="1.01", description="a"), Action(number="1.01", description="b")],
            )
        ]
    )
    outcome = merge_features(corrupted, [_proposal("2", "Billing", "invoices", ("2.01", "a"))])
    assert outcome.status is MergeStatus.INVARIANT
    with pytest.raises(InvariantViolation):
        outcome.unwrap()
