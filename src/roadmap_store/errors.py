from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    location: str = ""

    def __str__(self) -> str:
        if self.location:
            return f"[{self.code}] {self.location}: {self.message}"
        return f"[{self.code}] {self.message}"


class RoadmapError(Exception):
    """Base class for every error raised by the roadmap store."""


class FormatError(RoadmapError):
    """The stored document cannot be parsed at all."""


class SchemaError(FormatError):
    """The stored document parsed but its tree is structurally invalid."""

    def __init__(self, message: str, issues: Iterable[ValidationIssue] = ()) -> None:
        self.issues = tuple(issues)
        detail = "\n".join(f"  - {issue}" for issue in self.issues)
        super().__init__(f"{message}\n{detail}" if detail else message)


class RoadmapValidationError(RoadmapError):
    """Proposed input violates one or more rules.

    Always carries every issue found, never just the first one.
    """

    def __init__(self, issues: Iterable[ValidationIssue], *, summary: str = "Validation errors") -> None:
        self.issues = tuple(issues)
        if not self.issues:
            raise ValueError("RoadmapValidationError requires at least one issue")
        self.summary = summary
        lines = "\n".join(f"  - {issue.message}" for issue in self.issues)
        super().__init__(f"{summary}:\n{lines}")

    @property
    def codes(self) -> list[str]:
        return [issue.code for issue in self.issues]


class ImmutableFieldViolation(RoadmapValidationError):
    """An existing feature's title or description would change."""


class StatusTransitionError(RoadmapValidationError):
    """A requested status change is not allowed by the active policy."""


class TerminalStateError(StatusTransitionError):
    pass


class InvalidStatusError(StatusTransitionError):
    pass


class InvariantViolation(RoadmapError):
    """A merged tree broke an invariant that input validation should have guaranteed."""

    def __init__(self, issues: Iterable[ValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = "\n".join(f"  - {issue.message}" for issue in self.issues)
        super().__init__(f"Post-merge invariant violation:\n{lines}")


class NotFoundError(RoadmapError):
    """A referenced roadmap, feature or action does not exist."""


class LockTimeout(RoadmapError):
    """The roadmap lock could not be acquired within the wait budget.

    The requested mutation was not applied; retry after a backoff.
    """
