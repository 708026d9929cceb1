from importlib.metadata import version

from .canonical import roadmap_fingerprint, to_canonical_json
from .document import decode_document, encode_document
from .errors import (
    FormatError,
    ImmutableFieldViolation,
    InvalidStatusError,
    InvariantViolation,
    LockTimeout,
    NotFoundError,
    RoadmapError,
    RoadmapValidationError,
    SchemaError,
    StatusTransitionError,
    TerminalStateError,
    ValidationIssue,
)
from .messages import MessageCatalog, default_catalog
from .models import (
    Action,
    ActionStatus,
    Feature,
    ProposedAction,
    ProposedFeature,
    Roadmap,
    RoadmapDocument,
    StatusPolicy,
    validate_action_number,
    validate_feature_number,
    validate_status_transition,
)
from .operations import (
    ActionUpdate,
    AppendSummary,
    append_features,
    get_action,
    get_feature,
    roadmap_progress,
    update_action,
)
from .settings import StoreSettings
from .storage import CommitReceipt, RoadmapStore, TransformResult
from .validators import MergeOutcome, MergeStatus, merge_features, validate_roadmap


def get_version() -> str:
    try:
        return version("roadmap-store")
    except Exception:
        return "0.0.0"


__all__ = [
    "Action",
    "ActionStatus",
    "ActionUpdate",
    "AppendSummary",
    "CommitReceipt",
    "Feature",
    "FormatError",
    "ImmutableFieldViolation",
    "InvalidStatusError",
    "InvariantViolation",
    "LockTimeout",
    "MergeOutcome",
    "MergeStatus",
    "MessageCatalog",
    "NotFoundError",
    "ProposedAction",
    "ProposedFeature",
    "Roadmap",
    "RoadmapDocument",
    "RoadmapError",
    "RoadmapStore",
    "RoadmapValidationError",
    "SchemaError",
    "StatusPolicy",
    "StatusTransitionError",
    "StoreSettings",
    "TerminalStateError",
    "TransformResult",
    "ValidationIssue",
    "append_features",
    "decode_document",
    "default_catalog",
    "encode_document",
    "get_action",
    "get_feature",
    "get_version",
    "merge_features",
    "roadmap_fingerprint",
    "roadmap_progress",
    "to_canonical_json",
    "update_action",
    "validate_action_number",
    "validate_feature_number",
    "validate_roadmap",
    "validate_status_transition",
]
