"""Canonical JSON (RFC 8785) for roadmap trees.

Two trees that differ only in key order or whitespace of their stored form
produce the same canonical text and therefore the same fingerprint.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from enum import Enum
from typing import Any

import rfc8785
from pydantic import BaseModel

from .models import Roadmap


def _to_primitive(value: Any) -> Any:
    """Reduce models, enums and containers to the types ``rfc8785.dumps`` accepts.

    Raises:
        TypeError: If ``value`` holds something with no JSON form.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return _to_primitive(value.value)
    if isinstance(value, Mapping):
        return {str(key): _to_primitive(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_primitive(item) for item in value]
    raise TypeError(f"{type(value).__name__} has no canonical JSON form")


def to_canonical_json(value: Any) -> str:
    return rfc8785.dumps(_to_primitive(value)).decode("utf-8")


def roadmap_fingerprint(roadmap: Roadmap) -> str:
    """sha256 hex digest of the roadmap's canonical JSON."""
    return hashlib.sha256(to_canonical_json(roadmap).encode("utf-8")).hexdigest()
