from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar

from .canonical import roadmap_fingerprint
from .document import decode_document, encode_document
from .errors import NotFoundError, RoadmapValidationError, ValidationIssue
from .files import archive_file, cleanup_stale_temp_files, list_archives, read_text, write_atomic
from .lock import lock_path_for, locked
from .messages import MessageCatalog, default_catalog
from .models import RoadmapDocument, StatusPolicy
from .settings import StoreSettings
from .validators import validate_roadmap

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")


@dataclass
class TransformResult(Generic[ResultT]):
    """What a transform passed to ``RoadmapStore.update`` hands back.

    ``document=None`` leaves the stored file untouched. ``archive=True``
    archives the document right after it is written, under the same lock.
    """

    document: RoadmapDocument | None
    result: ResultT
    archive: bool = False


@dataclass(frozen=True)
class CommitReceipt(Generic[ResultT]):
    result: ResultT
    written: bool
    fingerprint: str | None = None
    archive_name: str | None = None


Transform = Callable[[RoadmapDocument | None], TransformResult[ResultT]]


class RoadmapStore:
    """Single-document roadmap store shared by independent processes.

    Every mutation runs under a sentinel-file lock and lands on disk through
    a temp-file-then-rename write, so readers only ever see a complete old
    or a complete new document. Reads are not locked.
    """

    def __init__(
        self,
        root: Path | str,
        *,
        settings: StoreSettings | None = None,
        catalog: MessageCatalog | None = None,
    ) -> None:
        self.settings = settings if settings is not None else StoreSettings.from_env()
        self.catalog = catalog if catalog is not None else default_catalog()
        self.root = Path(root)
        self.directory = self.settings.storage_dir(self.root)

    # ------------------------------------------------------------------
    # Path properties
    # ------------------------------------------------------------------

    @property
    def document_path(self) -> Path:
        """Path to the live roadmap document."""
        return self.directory / self.settings.file_name

    @property
    def lock_path(self) -> Path:
        """Path to the lock sentinel."""
        return lock_path_for(self.document_path)

    @property
    def status_policy(self) -> StatusPolicy:
        return self.settings.status_policy

    # ------------------------------------------------------------------
    # Unlocked reads
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        return self.document_path.is_file()

    def read(self) -> RoadmapDocument | None:
        """Read and decode the current document.

        Returns:
            The decoded document, or ``None`` if the file is missing or blank.

        Raises:
            FormatError: If the file cannot be parsed.
            SchemaError: If the parsed tree is structurally invalid.
        """
        text = read_text(self.document_path)
        if text is None or not text.strip():
            return None
        return decode_document(text, catalog=self.catalog)

    def list_archives(self) -> list[str]:
        """Return archive file names, oldest first."""
        return list_archives(self.directory, self.settings.file_name)

    # ------------------------------------------------------------------
    # Locked mutations
    # ------------------------------------------------------------------

    def write(self, document: RoadmapDocument) -> str:
        """Validate and persist ``document`` unconditionally.

        Returns:
            Fingerprint of the written roadmap.

        Raises:
            RoadmapValidationError: If the document is structurally invalid.
            LockTimeout: If the lock could not be acquired.
        """
        self._ensure_valid(document)
        with self._locked():
            return self._persist(document)

    def update(self, transform: Transform[ResultT]) -> ResultT:
        """Run ``transform`` against the current document under the lock.

        The transform receives the current document (or ``None``) and returns
        a ``TransformResult``. If it raises, nothing is written and the error
        propagates. Otherwise the new document is validated, written
        atomically and, if requested, archived before the lock is released.

        Returns:
            The transform's ``result`` value.
        """
        return self.update_with_receipt(transform).result

    def update_with_receipt(self, transform: Transform[ResultT]) -> CommitReceipt[ResultT]:
        """Same as ``update`` but also reports what was written and archived."""
        with self._locked():
            cleanup_stale_temp_files(
                self.directory,
                self.settings.file_name,
                older_than=self.settings.temp_file_max_age_s,
            )
            current = self.read()
            outcome = transform(current)

            fingerprint: str | None = None
            if outcome.document is not None:
                self._ensure_valid(outcome.document)
                fingerprint = self._persist(outcome.document)

            archive_name: str | None = None
            if outcome.archive:
                archive_name = self._archive_unlocked()

            return CommitReceipt(
                result=outcome.result,
                written=outcome.document is not None,
                fingerprint=fingerprint,
                archive_name=archive_name,
            )

    def archive(self) -> str:
        """Archive the live document.

        Returns:
            The archive file name.

        Raises:
            NotFoundError: If there is no document to archive.
            LockTimeout: If the lock could not be acquired.
        """
        with self._locked():
            return self._archive_unlocked()

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _locked(self) -> AbstractContextManager[None]:
        return locked(
            self.lock_path,
            timeout=self.settings.lock_timeout,
            retry_interval=self.settings.lock_retry_interval,
            stale_after=self.settings.lock_stale_after,
        )

    def _persist(self, document: RoadmapDocument) -> str:
        write_atomic(self.directory, self.settings.file_name, encode_document(document))
        fingerprint = roadmap_fingerprint(document.roadmap)
        logger.info(
            "committed roadmap %s (%d features, fingerprint %s)",
            self.document_path,
            len(document.roadmap.features),
            fingerprint[:12],
        )
        return fingerprint

    def _archive_unlocked(self) -> str:
        if not self.exists():
            raise NotFoundError(self.catalog.format("roadmap_not_found", directory=self.directory))
        return archive_file(self.directory, self.settings.file_name)

    def _ensure_valid(self, document: RoadmapDocument) -> None:
        issues: list[ValidationIssue] = []
        if not document.feature.strip():
            issues.append(ValidationIssue("EMPTY_TEXT", "Roadmap feature label cannot be empty.", location="document.feature"))
        issues.extend(validate_roadmap(document.roadmap, catalog=self.catalog))
        if issues:
            raise RoadmapValidationError(issues, summary="Refusing to persist an invalid roadmap")
