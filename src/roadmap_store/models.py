from __future__ import annotations

import re
from collections.abc import Iterator
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .errors import (
    InvalidStatusError,
    StatusTransitionError,
    TerminalStateError,
    ValidationIssue,
)

FEATURE_NUMBER_RE = re.compile(r"[0-9]+", re.ASCII)
ACTION_NUMBER_RE = re.compile(r"[0-9]+\.[0-9]{2}", re.ASCII)


class ActionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class StatusPolicy(str, Enum):
    """How strictly action status changes are checked.

    ``permissive`` allows any move except out of ``cancelled``, including
    skipping ahead and reverting. ``strict`` only allows
    ``pending -> in_progress -> completed`` and rejects ``cancelled``.
    """

    PERMISSIVE = "permissive"
    STRICT = "strict"


STRICT_STATUS_TRANSITIONS: dict[ActionStatus, frozenset[ActionStatus]] = {
    ActionStatus.PENDING: frozenset({ActionStatus.IN_PROGRESS}),
    ActionStatus.IN_PROGRESS: frozenset({ActionStatus.COMPLETED}),
    ActionStatus.COMPLETED: frozenset(),
    ActionStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES: dict[StatusPolicy, frozenset[ActionStatus]] = {
    StatusPolicy.PERMISSIVE: frozenset({ActionStatus.CANCELLED}),
    StatusPolicy.STRICT: frozenset({ActionStatus.CANCELLED, ActionStatus.COMPLETED}),
}

# Statuses that no longer count as outstanding work.
CLOSED_STATUSES = frozenset({ActionStatus.COMPLETED, ActionStatus.CANCELLED})


class Action(BaseModel):
    model_config = ConfigDict(extra="forbid")

    number: str = Field(description='Action number with two decimals ("1.01"); never changes')
    description: str = Field(description="Action description; overwritten in full on update")
    status: ActionStatus = Field(default=ActionStatus.PENDING, description="Current status")


class Feature(BaseModel):
    model_config = ConfigDict(extra="forbid")

    number: str = Field(description='Feature number ("1", "2"); never changes')
    title: str
    description: str
    actions: list[Action] = Field(default_factory=list)

    def find_action(self, number: str) -> Action | None:
        for action in self.actions:
            if action.number == number:
                return action
        return None

    def sort_actions(self) -> None:
        self.actions.sort(key=lambda action: action_sort_key(action.number))


class Roadmap(BaseModel):
    model_config = ConfigDict(extra="forbid")

    features: list[Feature] = Field(default_factory=list)

    def find_feature(self, number: str) -> Feature | None:
        for feature in self.features:
            if feature.number == number:
                return feature
        return None

    def find_action(self, number: str) -> tuple[Feature, Action] | None:
        for feature in self.features:
            action = feature.find_action(number)
            if action is not None:
                return feature, action
        return None

    def iter_actions(self) -> Iterator[Action]:
        for feature in self.features:
            yield from feature.actions

    def sort_features(self) -> None:
        self.features.sort(key=lambda feature: feature_sort_key(feature.number))

    def all_closed(self) -> bool:
        """True when the roadmap has actions and none of them is outstanding."""
        actions = list(self.iter_actions())
        return bool(actions) and all(action.status in CLOSED_STATUSES for action in actions)


class RoadmapDocument(BaseModel):
    """The persisted unit: free-text metadata carried alongside the tree."""

    feature: str
    spec: str = ""
    roadmap: Roadmap = Field(default_factory=Roadmap)


class ProposedAction(BaseModel):
    """Client-supplied action. Any status sent by the client is ignored."""

    number: str
    description: str


class ProposedFeature(BaseModel):
    number: str
    title: str
    description: str
    actions: list[ProposedAction] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Identifier helpers
# ---------------------------------------------------------------------------

def validate_feature_number(number: object) -> ValidationIssue | None:
    if not isinstance(number, str) or not FEATURE_NUMBER_RE.fullmatch(number):
        return ValidationIssue(
            "INVALID_FORMAT",
            f'Invalid feature ID "{number}": must be a simple number such as "1" or "2".',
            location="feature.number",
        )
    return None


def validate_action_number(number: object) -> ValidationIssue | None:
    if not isinstance(number, str) or not ACTION_NUMBER_RE.fullmatch(number):
        return ValidationIssue(
            "INVALID_FORMAT",
            f'Invalid action ID "{number}": must be X.YY such as "1.01".',
            location="action.number",
        )
    return None


def feature_sort_key(number: str) -> int:
    return int(number)


def action_sort_key(number: str) -> float:
    return float(number)


def action_feature_prefix(number: str) -> str:
    return number.split(".", 1)[0]


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

def parse_status(value: ActionStatus | str, policy: StatusPolicy = StatusPolicy.PERMISSIVE) -> ActionStatus:
    """Return ``value`` as an ``ActionStatus`` allowed by ``policy``.

    Raises:
        InvalidStatusError: If the value is not a status the policy accepts.
    """
    allowed = [status for status in ActionStatus if policy is StatusPolicy.PERMISSIVE or status is not ActionStatus.CANCELLED]
    try:
        status = ActionStatus(value)
    except ValueError:
        status = None
    if status is None or status not in allowed:
        raise InvalidStatusError(
            [
                ValidationIssue(
                    "INVALID_STATUS",
                    f'Invalid status "{getattr(value, "value", value)}". Valid: {", ".join(s.value for s in allowed)}',
                    location="action.status",
                )
            ],
            summary="Invalid status",
        )
    return status


def validate_status_transition(
    current: ActionStatus,
    requested: ActionStatus | str,
    policy: StatusPolicy = StatusPolicy.PERMISSIVE,
) -> ActionStatus:
    """Check a status change and return the requested status.

    Terminal states are checked before anything else, so a cancelled action
    rejects every request including an invalid one.

    Raises:
        TerminalStateError: If ``current`` is terminal under ``policy``.
        InvalidStatusError: If ``requested`` is not an accepted status.
        StatusTransitionError: If the strict policy forbids the move.
    """
    if current in TERMINAL_STATUSES[policy]:
        requested_label = getattr(requested, "value", requested)
        if current is ActionStatus.CANCELLED:
            message = "Cannot change status of cancelled action. Create a new action instead."
        else:
            message = f'Cannot change status of {current.value} action (requested "{requested_label}").'
        raise TerminalStateError(
            [ValidationIssue("TERMINAL_STATE", message, location="action.status")],
            summary="Terminal status",
        )

    target = parse_status(requested, policy)
    if target is current or policy is StatusPolicy.PERMISSIVE:
        return target

    allowed = STRICT_STATUS_TRANSITIONS[current]
    if target not in allowed:
        allowed_label = ", ".join(sorted(status.value for status in allowed)) or "None (terminal state)"
        raise StatusTransitionError(
            [
                ValidationIssue(
                    "INVALID_TRANSITION",
                    f'Cannot move from "{current.value}" to "{target.value}". Allowed: {allowed_label}',
                    location="action.status",
                )
            ],
            summary="Invalid status transition",
        )
    return target
