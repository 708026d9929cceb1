"""Render and parse the roadmap markdown document.

Layout::

    ---
    feature: "Label"
    spec: |
      free text, indented two spaces
    ---

    ```json
    {"features": [...]}
    ```

The front matter stays human-editable; the task tree lives in a fenced JSON
block so it parses without ambiguity.
"""

from __future__ import annotations

import json
import re

from pydantic import ValidationError

from .errors import FormatError, SchemaError, ValidationIssue
from .messages import MessageCatalog
from .models import Roadmap, RoadmapDocument
from .validators import validate_roadmap

FRONTMATTER_START = "---\n"
FRONTMATTER_END = "\n---\n"
TASK_FENCE = "```json"
TASK_FENCE_END = "\n```"
SPEC_INDENT = "  "

_KEY_RE = re.compile(r"^([A-Za-z_][\w-]*):(.*)$")


def encode_document(document: RoadmapDocument) -> str:
    spec_value = document.spec.rstrip()
    spec_lines = spec_value.split("\n") if spec_value else [""]
    spec_block = "\n".join(f"{SPEC_INDENT}{line}".rstrip() or SPEC_INDENT for line in spec_lines)
    tasks = document.roadmap.model_dump_json(indent=2)

    return "\n".join(
        [
            "---",
            f"feature: {json.dumps(document.feature, ensure_ascii=False)}",
            "spec: |",
            spec_block,
            "---",
            "",
            TASK_FENCE,
            tasks,
            "```",
            "",
        ]
    )


def decode_document(data: str, *, catalog: MessageCatalog | None = None) -> RoadmapDocument:
    """Parse a stored document.

    Raises:
        FormatError: If the front matter or task block is missing, unterminated
            or malformed.
        SchemaError: If the task tree parsed but is structurally invalid.
    """
    text = data.replace("\r\n", "\n")
    frontmatter, body = _split_frontmatter(text)
    feature, spec = _parse_frontmatter(frontmatter)
    roadmap = _parse_roadmap_body(body)

    issues = validate_roadmap(roadmap, catalog=catalog)
    if issues:
        raise SchemaError("Roadmap document failed validation.", issues)
    return RoadmapDocument(feature=feature, spec=spec, roadmap=roadmap)


def _split_frontmatter(text: str) -> tuple[str, str]:
    if not text.startswith(FRONTMATTER_START):
        raise FormatError("Roadmap format is invalid. Missing frontmatter.")
    # Search from just before the body so an empty front matter still closes.
    end_index = text.find(FRONTMATTER_END, len(FRONTMATTER_START) - 1)
    if end_index == -1:
        raise FormatError("Roadmap format is invalid. Frontmatter is not closed.")
    frontmatter = text[len(FRONTMATTER_START):end_index] if end_index >= len(FRONTMATTER_START) else ""
    return frontmatter, text[end_index + len(FRONTMATTER_END):]


def _parse_frontmatter(frontmatter: str) -> tuple[str, str]:
    feature: str | None = None
    spec_lines: list[str] | None = None
    current_block: list[str] | None = None

    for line in frontmatter.split("\n"):
        match = _KEY_RE.match(line)
        if match is None:
            # Indented or blank lines continue the open block value, if any.
            if current_block is not None:
                current_block.append(line)
            continue

        key, raw_value = match.group(1), match.group(2)
        current_block = None
        if key == "feature":
            feature = _parse_scalar(raw_value)
        elif key == "spec":
            if raw_value.strip() != "|":
                raise FormatError("Roadmap format is invalid. Spec must use a block value.")
            spec_lines = []
            current_block = spec_lines

    if not feature:
        raise FormatError("Roadmap format is invalid. Missing feature.")
    if spec_lines is None:
        raise FormatError("Roadmap format is invalid. Missing spec.")
    return feature, _normalize_block(spec_lines)


def _parse_scalar(value: str) -> str:
    trimmed = value.strip()
    if len(trimmed) >= 2 and trimmed.startswith('"') and trimmed.endswith('"'):
        try:
            parsed = json.loads(trimmed)
        except json.JSONDecodeError:
            return trimmed[1:-1]
        return parsed if isinstance(parsed, str) else trimmed[1:-1]
    if len(trimmed) >= 2 and trimmed.startswith("'") and trimmed.endswith("'"):
        return trimmed[1:-1].replace("''", "'")
    return trimmed


def _normalize_block(lines: list[str]) -> str:
    non_empty = [line for line in lines if line.strip()]
    if not non_empty:
        return ""
    indent = min(len(line) - len(line.lstrip()) for line in non_empty)
    return "\n".join(line[indent:].rstrip() for line in lines).rstrip()


def _parse_roadmap_body(body: str) -> Roadmap:
    fence_start = body.find(TASK_FENCE)
    if fence_start == -1:
        raise FormatError("Roadmap format is invalid. Missing task block.")

    json_start = body.find("\n", fence_start + len(TASK_FENCE))
    if json_start == -1:
        raise FormatError("Roadmap format is invalid. Task block is incomplete.")

    fence_end = body.find(TASK_FENCE_END, json_start)
    if fence_end == -1:
        raise FormatError("Roadmap format is invalid. Task block is not closed.")

    json_text = body[json_start + 1:fence_end].strip()
    if not json_text:
        raise FormatError("Roadmap format is invalid. Task block is empty.")
    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError as exc:
        raise FormatError(f"Roadmap format is invalid. Task block is not valid JSON: {exc}") from exc

    try:
        return Roadmap.model_validate(parsed)
    except ValidationError as exc:
        issues = [
            ValidationIssue("SCHEMA", error["msg"], location=".".join(str(part) for part in error["loc"]))
            for error in exc.errors()
        ]
        raise SchemaError("Roadmap task block does not match the roadmap schema.", issues) from exc
