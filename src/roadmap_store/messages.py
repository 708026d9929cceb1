from __future__ import annotations

import re
import threading
from pathlib import Path

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


def get_messages_dir() -> Path:
    """Return package-relative path to the message templates."""
    return Path(__file__).resolve().parent / "messages"


class MessageCatalog:
    """Lazily loaded, explicitly owned cache of operator-facing message templates.

    Templates are plain ``<name>.txt`` files with ``{placeholder}`` fields.
    Each template is read once, on first lookup, and kept for the lifetime
    of the catalog instance.
    """

    def __init__(self, root: Path | None = None) -> None:
        self.root = root if root is not None else get_messages_dir()
        self._templates: dict[str, str] = {}
        self._lock = threading.Lock()

    def template(self, name: str) -> str:
        with self._lock:
            cached = self._templates.get(name)
            if cached is not None:
                return cached
            path = self.root / f"{name}.txt"
            if not path.is_file():
                raise FileNotFoundError(f"message template not found: {name} at {path}")
            text = path.read_text(encoding="utf-8").strip()
            self._templates[name] = text
            return text

    def format(self, name: str, **params: object) -> str:
        """Render template ``name``; unknown placeholders are left as-is."""
        template = self.template(name)
        return _PLACEHOLDER_RE.sub(
            lambda match: str(params[match.group(1)]) if match.group(1) in params else match.group(0),
            template,
        )

    def is_cached(self, name: str) -> bool:
        return name in self._templates


_default_catalog: MessageCatalog | None = None


def default_catalog() -> MessageCatalog:
    """Return the process-wide catalog, creating it on first use."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = MessageCatalog()
    return _default_catalog
