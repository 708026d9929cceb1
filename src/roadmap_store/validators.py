"""Validation and append-only merge for roadmap trees.

Checks never raise on bad input: they return lists of ``ValidationIssue`` so
callers see every problem at once. ``merge_features`` follows the same rule
and returns a ``MergeOutcome`` that the caller unwraps explicitly.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from .errors import ImmutableFieldViolation, InvariantViolation, RoadmapValidationError, ValidationIssue
from .messages import MessageCatalog, default_catalog
from .models import (
    Action,
    ActionStatus,
    Feature,
    ProposedFeature,
    Roadmap,
    action_feature_prefix,
    validate_action_number,
    validate_feature_number,
)

logger = logging.getLogger(__name__)


class _Numbered(Protocol):
    number: str


class _NumberedFeature(Protocol):
    number: str

    @property
    def actions(self) -> Sequence[_Numbered]: ...


def validate_text(value: object, field_name: str, kind: str) -> ValidationIssue | None:
    if not isinstance(value, str) or not value.strip():
        return ValidationIssue("EMPTY_TEXT", f"{kind.capitalize()} {field_name} cannot be empty.", location=f"{kind}.{field_name}")
    return None


def validate_action_sequence(
    actions: Iterable[_Numbered],
    seen_globally: set[str] | None = None,
    feature_number: str | None = None,
    *,
    catalog: MessageCatalog | None = None,
) -> list[ValidationIssue]:
    """Check action numbers for format, feature prefix and duplicates."""
    catalog = catalog or default_catalog()
    issues: list[ValidationIssue] = []
    seen: set[str] = set()

    for action in actions:
        format_issue = validate_action_number(action.number)
        if format_issue is not None:
            issues.append(format_issue)
            continue

        location = f"action {action.number}"
        if feature_number is not None and action_feature_prefix(action.number) != feature_number:
            issues.append(
                ValidationIssue(
                    "ACTION_FEATURE_MISMATCH",
                    catalog.format("action_mismatch", action=action.number, feature=feature_number),
                    location=location,
                )
            )
        if action.number in seen:
            issues.append(
                ValidationIssue("DUPLICATE_ACTION_NUMBER", f'Duplicate action ID "{action.number}".', location=location)
            )
        elif seen_globally is not None and action.number in seen_globally:
            issues.append(
                ValidationIssue(
                    "DUPLICATE_ACTION_NUMBER_GLOBAL",
                    f'Duplicate action ID "{action.number}" (exists in another feature).',
                    location=location,
                )
            )

        seen.add(action.number)
        if seen_globally is not None:
            seen_globally.add(action.number)

    return issues


def validate_feature_sequence(
    features: Iterable[_NumberedFeature],
    *,
    catalog: MessageCatalog | None = None,
) -> list[ValidationIssue]:
    """Check feature numbers and every feature's actions, across the whole batch."""
    issues: list[ValidationIssue] = []
    seen: set[str] = set()
    seen_actions: set[str] = set()

    for feature in features:
        format_issue = validate_feature_number(feature.number)
        if format_issue is not None:
            issues.append(format_issue)
            issues.extend(validate_action_sequence(feature.actions, seen_actions, None, catalog=catalog))
            continue
        if feature.number in seen:
            issues.append(
                ValidationIssue(
                    "DUPLICATE_FEATURE_NUMBER",
                    f'Duplicate feature ID "{feature.number}".',
                    location=f"feature {feature.number}",
                )
            )
        seen.add(feature.number)
        issues.extend(validate_action_sequence(feature.actions, seen_actions, feature.number, catalog=catalog))

    return issues


def validate_roadmap(roadmap: Roadmap, *, catalog: MessageCatalog | None = None) -> list[ValidationIssue]:
    """Full-tree check used before every write and after every decode."""
    catalog = catalog or default_catalog()
    issues: list[ValidationIssue] = []
    if not roadmap.features:
        issues.append(ValidationIssue("NO_FEATURES", "Roadmap must contain at least one feature.", location="roadmap"))

    for feature in roadmap.features:
        issues.extend(_feature_text_issues(feature.number, feature.title, feature.description))
        if not feature.actions:
            issues.append(
                ValidationIssue("NO_ACTIONS", catalog.format("no_actions", id=feature.number), location=f"feature {feature.number}")
            )
        for action in feature.actions:
            issue = validate_text(action.description, "description", "action")
            if issue is not None:
                issues.append(_relocate(issue, f"action {action.number}"))

    issues.extend(validate_feature_sequence(roadmap.features, catalog=catalog))
    return issues


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

class MergeStatus(str, Enum):
    OK = "ok"
    INVALID_INPUT = "invalid_input"
    IMMUTABLE_FIELD = "immutable_field"
    INVARIANT = "invariant"


@dataclass
class MergeOutcome:
    """Result of ``merge_features``: a merged roadmap or the issues that stopped it."""

    status: MergeStatus
    roadmap: Roadmap | None = None
    issues: tuple[ValidationIssue, ...] = ()
    added_features: list[str] = field(default_factory=list)
    added_actions: list[str] = field(default_factory=list)
    skipped_actions: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is MergeStatus.OK

    def unwrap(self) -> Roadmap:
        """Return the merged roadmap or raise the error matching ``status``."""
        if self.status is MergeStatus.OK and self.roadmap is not None:
            return self.roadmap
        if self.status is MergeStatus.IMMUTABLE_FIELD:
            raise ImmutableFieldViolation(self.issues, summary="Immutable feature fields")
        if self.status is MergeStatus.INVARIANT:
            raise InvariantViolation(self.issues)
        raise RoadmapValidationError(self.issues)


def merge_features(
    existing: Roadmap | None,
    proposed: Sequence[ProposedFeature],
    *,
    catalog: MessageCatalog | None = None,
) -> MergeOutcome:
    """Fold ``proposed`` into ``existing`` under append-only rules.

    ``existing`` is not modified. Existing actions are skipped silently, new
    actions and features are added as ``pending``, and an existing feature
    whose title or description differs from the proposal is rejected.
    """
    catalog = catalog or default_catalog()

    input_issues: list[ValidationIssue] = []
    if not proposed:
        input_issues.append(
            ValidationIssue("NO_FEATURES", "Roadmap must have at least one feature with at least one action.", location="features")
        )
    for feature in proposed:
        if not feature.actions:
            input_issues.append(
                ValidationIssue("NO_ACTIONS", catalog.format("no_actions", id=feature.number), location=f"feature {feature.number}")
            )
        input_issues.extend(_feature_text_issues(feature.number, feature.title, feature.description))
        for action in feature.actions:
            issue = validate_text(action.description, "description", "action")
            if issue is not None:
                input_issues.append(_relocate(issue, f"action {action.number}"))
    input_issues.extend(validate_feature_sequence(proposed, catalog=catalog))
    if input_issues:
        return MergeOutcome(MergeStatus.INVALID_INPUT, issues=tuple(input_issues))

    merged = existing.model_copy(deep=True) if existing is not None else Roadmap()
    outcome = MergeOutcome(MergeStatus.OK)
    immutable_issues: list[ValidationIssue] = []

    for proposal in proposed:
        current = merged.find_feature(proposal.number)
        if current is None:
            created = Feature(
                number=proposal.number,
                title=proposal.title,
                description=proposal.description,
                actions=[
                    Action(number=action.number, description=action.description, status=ActionStatus.PENDING)
                    for action in proposal.actions
                ],
            )
            created.sort_actions()
            merged.features.append(created)
            outcome.added_features.append(proposal.number)
            outcome.added_actions.extend(action.number for action in proposal.actions)
            continue

        if current.title != proposal.title or current.description != proposal.description:
            immutable_issues.append(
                ValidationIssue(
                    "IMMUTABLE_FIELD",
                    catalog.format(
                        "immutable_feature",
                        id=proposal.number,
                        old_title=current.title,
                        old_description=current.description,
                        new_title=proposal.title,
                        new_description=proposal.description,
                    ),
                    location=f"feature {proposal.number}",
                )
            )
            continue

        for action in proposal.actions:
            if current.find_action(action.number) is not None:
                outcome.skipped_actions.append(action.number)
                continue
            current.actions.append(Action(number=action.number, description=action.description, status=ActionStatus.PENDING))
            current.sort_actions()
            outcome.added_actions.append(action.number)

    if immutable_issues:
        return MergeOutcome(MergeStatus.IMMUTABLE_FIELD, issues=tuple(immutable_issues))

    merged.sort_features()

    invariant_issues = validate_feature_sequence(merged.features, catalog=catalog)
    for feature in merged.features:
        if not feature.actions:
            invariant_issues.append(
                ValidationIssue(
                    "NO_ACTIONS",
                    f'Feature "{feature.number}" has no actions after merge.',
                    location=f"feature {feature.number}",
                )
            )
    if invariant_issues:
        logger.error("merge produced an invalid roadmap: %s", "; ".join(str(issue) for issue in invariant_issues))
        return MergeOutcome(MergeStatus.INVARIANT, issues=tuple(invariant_issues))

    outcome.roadmap = merged
    return outcome


def _feature_text_issues(number: str, title: object, description: object) -> list[ValidationIssue]:
    issues = []
    for field_name, value in (("title", title), ("description", description)):
        issue = validate_text(value, field_name, "feature")
        if issue is not None:
            issues.append(_relocate(issue, f"feature {number}"))
    return issues


def _relocate(issue: ValidationIssue, location: str) -> ValidationIssue:
    return ValidationIssue(issue.code, issue.message, location=location)
