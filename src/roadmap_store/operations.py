"""Roadmap operations exposed to callers (tools, CLI).

Each mutation is a transform run through ``RoadmapStore.update``, so
appending features and changing an action share one lock and one commit
path.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from pydantic import ValidationError

from .errors import NotFoundError, RoadmapValidationError, ValidationIssue
from .models import (
    ActionStatus,
    Feature,
    ProposedFeature,
    Roadmap,
    RoadmapDocument,
    StatusPolicy,
    validate_action_number,
    validate_feature_number,
    validate_status_transition,
)
from .storage import RoadmapStore, TransformResult
from .validators import MergeStatus, merge_features, validate_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureProgress:
    number: str
    title: str
    completed: int
    total: int

    @property
    def done(self) -> bool:
        return self.total > 0 and self.completed == self.total


@dataclass(frozen=True)
class RoadmapProgress:
    total: int
    by_status: dict[str, int]
    features: list[FeatureProgress]

    @property
    def completed(self) -> int:
        return self.by_status.get(ActionStatus.COMPLETED.value, 0)


@dataclass(frozen=True)
class AppendSummary:
    created: bool
    feature_count: int
    action_count: int
    added_features: list[str] = field(default_factory=list)
    added_actions: list[str] = field(default_factory=list)
    skipped_actions: list[str] = field(default_factory=list)
    fingerprint: str | None = None


@dataclass(frozen=True)
class ActionUpdate:
    action_number: str
    feature_number: str
    feature_title: str
    old_status: ActionStatus
    new_status: ActionStatus
    old_description: str
    new_description: str
    feature_progress: FeatureProgress
    archived: str | None = None
    fingerprint: str | None = None

    @property
    def status_changed(self) -> bool:
        return self.old_status is not self.new_status

    @property
    def description_changed(self) -> bool:
        return self.old_description != self.new_description


@dataclass(frozen=True)
class ActionView:
    feature: Feature
    action_number: str
    description: str
    status: ActionStatus


def roadmap_progress(roadmap: Roadmap) -> RoadmapProgress:
    by_status = {status.value: 0 for status in ActionStatus}
    for action in roadmap.iter_actions():
        by_status[action.status.value] += 1
    return RoadmapProgress(
        total=sum(by_status.values()),
        by_status=by_status,
        features=[_feature_progress(feature) for feature in roadmap.features],
    )


def require_document(store: RoadmapStore) -> RoadmapDocument:
    """Read the current document or raise ``NotFoundError``."""
    document = store.read()
    if document is None:
        raise NotFoundError(store.catalog.format("roadmap_not_found", directory=store.directory))
    return document


def append_features(
    store: RoadmapStore,
    features: Sequence[ProposedFeature | Mapping[str, Any]],
    *,
    feature: str | None = None,
    spec: str | None = None,
) -> AppendSummary:
    """Create the roadmap or merge new features/actions into it.

    ``feature`` and ``spec`` are only used when the roadmap is created;
    an existing document keeps its metadata.

    Raises:
        RoadmapValidationError: If the input is invalid (all issues listed).
        ImmutableFieldViolation: If an existing feature's title or
            description differs from the proposal.
        InvariantViolation: If the merged tree is inconsistent.
    """
    proposed = _coerce_features(features)

    def transform(current: RoadmapDocument | None) -> TransformResult[AppendSummary]:
        label_issues: list[ValidationIssue] = []
        if current is None:
            issue = validate_text(feature, "label", "roadmap")
            if issue is not None:
                label_issues.append(issue)

        outcome = merge_features(current.roadmap if current is not None else None, proposed, catalog=store.catalog)
        if label_issues:
            extra = outcome.issues if outcome.status is MergeStatus.INVALID_INPUT else ()
            raise RoadmapValidationError([*label_issues, *extra])
        roadmap = outcome.unwrap()

        if current is None:
            document = RoadmapDocument(feature=feature or "", spec=(spec or "").rstrip(), roadmap=roadmap)
        else:
            document = RoadmapDocument(feature=current.feature, spec=current.spec, roadmap=roadmap)

        summary = AppendSummary(
            created=current is None,
            feature_count=len(roadmap.features),
            action_count=sum(len(item.actions) for item in roadmap.features),
            added_features=outcome.added_features,
            added_actions=outcome.added_actions,
            skipped_actions=outcome.skipped_actions,
        )
        return TransformResult(document=document, result=summary)

    receipt = store.update_with_receipt(transform)
    summary = receipt.result
    logger.info(
        "%s roadmap: %d features, %d actions (+%d features, +%d actions, %d skipped)",
        "created" if summary.created else "updated",
        summary.feature_count,
        summary.action_count,
        len(summary.added_features),
        len(summary.added_actions),
        len(summary.skipped_actions),
    )
    return replace(summary, fingerprint=receipt.fingerprint)


def update_action(
    store: RoadmapStore,
    action_number: str,
    *,
    description: str | None = None,
    status: ActionStatus | str | None = None,
    policy: StatusPolicy | None = None,
) -> ActionUpdate:
    """Overwrite an action's description and/or status.

    When every action in the roadmap is completed or cancelled afterwards,
    the roadmap is archived in the same locked update and
    ``ActionUpdate.archived`` holds the archive file name.

    Raises:
        RoadmapValidationError: If the number is malformed, nothing was
            requested, or the description is empty.
        TerminalStateError, InvalidStatusError, StatusTransitionError: If the
            status change is rejected by ``policy``.
        NotFoundError: If the roadmap or the action does not exist.
    """
    active_policy = policy if policy is not None else store.status_policy

    issues: list[ValidationIssue] = []
    number_issue = validate_action_number(action_number)
    if number_issue is not None:
        issues.append(number_issue)
    if description is None and status is None:
        issues.append(ValidationIssue("NO_CHANGES", "No changes specified. Provide a description and/or status."))
    if description is not None:
        text_issue = validate_text(description, "description", "action")
        if text_issue is not None:
            issues.append(text_issue)
    if issues:
        raise RoadmapValidationError(issues)

    def transform(current: RoadmapDocument | None) -> TransformResult[ActionUpdate]:
        if current is None:
            raise NotFoundError(store.catalog.format("roadmap_not_found", directory=store.directory))
        found = current.roadmap.find_action(action_number)
        if found is None:
            raise NotFoundError(store.catalog.format("action_not_found", id=action_number))
        target_feature, target = found

        old_status, old_description = target.status, target.description
        new_status = old_status
        if status is not None:
            new_status = validate_status_transition(old_status, status, active_policy)
        if description is not None:
            target.description = description
        target.status = new_status

        result = ActionUpdate(
            action_number=action_number,
            feature_number=target_feature.number,
            feature_title=target_feature.title,
            old_status=old_status,
            new_status=new_status,
            old_description=old_description,
            new_description=target.description,
            feature_progress=_feature_progress(target_feature),
        )
        return TransformResult(document=current, result=result, archive=current.roadmap.all_closed())

    receipt = store.update_with_receipt(transform)
    update = receipt.result
    if update.status_changed:
        logger.info("action %s: %s -> %s", action_number, update.old_status.value, update.new_status.value)
    if receipt.archive_name is not None:
        logger.info("all actions closed; roadmap archived to %s", receipt.archive_name)
    return replace(update, archived=receipt.archive_name, fingerprint=receipt.fingerprint)


def get_feature(store: RoadmapStore, number: str) -> Feature:
    issue = validate_feature_number(number)
    if issue is not None:
        raise RoadmapValidationError([issue])
    feature = require_document(store).roadmap.find_feature(number)
    if feature is None:
        raise NotFoundError(store.catalog.format("feature_not_found", id=number))
    return feature


def get_action(store: RoadmapStore, number: str) -> ActionView:
    issue = validate_action_number(number)
    if issue is not None:
        raise RoadmapValidationError([issue])
    found = require_document(store).roadmap.find_action(number)
    if found is None:
        raise NotFoundError(store.catalog.format("action_not_found", id=number))
    feature, action = found
    return ActionView(feature=feature, action_number=action.number, description=action.description, status=action.status)


def _coerce_features(features: Sequence[ProposedFeature | Mapping[str, Any]]) -> list[ProposedFeature]:
    proposed: list[ProposedFeature] = []
    issues: list[ValidationIssue] = []
    for index, item in enumerate(features):
        if isinstance(item, ProposedFeature):
            proposed.append(item)
            continue
        try:
            proposed.append(ProposedFeature.model_validate(item))
        except ValidationError as exc:
            for error in exc.errors():
                location = ".".join(str(part) for part in ("features", index, *error["loc"]))
                issues.append(ValidationIssue("SCHEMA", f"{location}: {error['msg']}", location=location))
    if issues:
        raise RoadmapValidationError(issues)
    return proposed


def _feature_progress(feature: Feature) -> FeatureProgress:
    completed = sum(1 for action in feature.actions if action.status is ActionStatus.COMPLETED)
    return FeatureProgress(number=feature.number, title=feature.title, completed=completed, total=len(feature.actions))
