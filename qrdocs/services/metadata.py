"""Persistence for the token index backing the document registry."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterator, Mapping

from pydantic import ValidationError

from ..models import DocumentEntry
from ..utils.errors import BlobNotFound, MetadataCorruption, StorageError
from .storage import StorageBackend

logger = logging.getLogger(__name__)

MIRROR_PREFIX = "meta/"
_LEGACY_TIMESTAMP = re.compile(r"^(\d{10,16})-")


@dataclass
class MetadataIndex:
    """In-memory view of the persisted token index.

    ``by_token`` is canonical; ``by_filename`` is derived on demand so the two
    can never disagree.
    """

    by_token: dict[str, DocumentEntry] = field(default_factory=dict)

    def __contains__(self, token: object) -> bool:
        return token in self.by_token

    def __iter__(self) -> Iterator[DocumentEntry]:
        return iter(self.by_token.values())

    def __len__(self) -> int:
        return len(self.by_token)

    @property
    def by_filename(self) -> dict[str, DocumentEntry]:
        return {entry.storage_key: entry for entry in self.by_token.values()}

    def get(self, token: str) -> DocumentEntry | None:
        return self.by_token.get(token)

    def add(self, entry: DocumentEntry) -> None:
        self.by_token[entry.token] = entry

    def remove(self, token: str) -> DocumentEntry | None:
        return self.by_token.pop(token, None)

    def to_payload(self) -> dict[str, Any]:
        return {
            "byToken": {
                token: entry.to_record() for token, entry in self.by_token.items()
            },
            "byFilename": {
                key: entry.to_record() for key, entry in self.by_filename.items()
            },
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "MetadataIndex":
        """Build an index from a decoded JSON document.

        Accepts the two-index layout as well as the flat ``{token: filename}``
        mapping written by earlier deployments.
        """

        if not isinstance(payload, Mapping):
            raise MetadataCorruption("Token index must be a JSON object")

        index = cls()
        if "byToken" not in payload and "byFilename" not in payload:
            for token, filename in payload.items():
                if not isinstance(filename, str):
                    raise MetadataCorruption(f"Unexpected legacy value for {token!r}")
                try:
                    index.add(_legacy_entry(str(token), filename))
                except ValidationError as exc:
                    raise MetadataCorruption(f"Invalid legacy entry: {exc}") from exc
            return index

        by_token = payload.get("byToken") or {}
        by_filename = payload.get("byFilename") or {}
        if not isinstance(by_token, Mapping) or not isinstance(by_filename, Mapping):
            raise MetadataCorruption("byToken and byFilename must be JSON objects")

        try:
            for token, record in by_token.items():
                entry = DocumentEntry.model_validate(record)
                if entry.token != token:
                    raise MetadataCorruption(f"Token mismatch for {token!r}")
                index.add(entry)
            for record in by_filename.values():
                entry = DocumentEntry.model_validate(record)
                if entry.token not in index:
                    logger.warning(
                        "Recovered token %s… from the filename index", entry.token[:8]
                    )
                    index.add(entry)
        except ValidationError as exc:
            raise MetadataCorruption(f"Invalid document entry: {exc}") from exc
        return index


def _legacy_created_at(match: re.Match[str] | None) -> datetime:
    if match is None:
        return datetime.now(UTC)
    try:
        return datetime.fromtimestamp(int(match.group(1)) / 1000, UTC)
    except (ValueError, OverflowError, OSError):
        logger.warning("Legacy timestamp %s is out of range", match.group(1))
        return datetime.now(UTC)


def _legacy_entry(token: str, filename: str) -> DocumentEntry:
    match = _LEGACY_TIMESTAMP.match(filename)
    created_at = _legacy_created_at(match)
    original_name = filename[match.end():] if match else filename
    return DocumentEntry(
        token=token,
        original_name=original_name or filename,
        storage_key=filename,
        qr_storage_key=f"{filename}-qr.png",
        created_at=created_at,
    )


class MetadataStore:
    """Read and write the JSON token index, optionally mirrored per token."""

    def __init__(self, path: Path | str, *, mirror: StorageBackend | None = None) -> None:
        self.path = Path(path)
        self.mirror = mirror
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _read_raw(self) -> bytes | None:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None

    def read_all(self, *, strict: bool = False) -> MetadataIndex:
        """Return the persisted index, or an empty one if it is missing or corrupt.

        Readers tolerate I/O errors and see an empty index. Callers about to
        rewrite the file pass ``strict=True`` so that an unreadable file raises
        :class:`StorageError` instead of being overwritten with nothing.
        """

        try:
            raw = self._read_raw()
        except OSError as exc:
            if strict:
                raise StorageError(f"Unable to read token index: {exc}") from exc
            logger.error("Unable to read token index %s: %s", self.path, exc)
            return MetadataIndex()

        if raw is None or not raw.strip():
            return MetadataIndex()

        try:
            return MetadataIndex.from_payload(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, MetadataCorruption) as exc:
            logger.error(
                "Token index %s is corrupt, continuing with an empty index: %s",
                self.path,
                exc,
            )
            return MetadataIndex()

    def write_all(self, index: MetadataIndex) -> None:
        """Persist ``index`` by writing a sibling file and renaming it into place."""

        payload = json.dumps(index.to_payload(), indent=2, sort_keys=True)
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as buffer:
                buffer.write(payload)
                buffer.flush()
                os.fsync(buffer.fileno())
            os.replace(temp_name, self.path)
        except BaseException:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise

    @property
    def mirrored(self) -> bool:
        return self.mirror is not None

    @staticmethod
    def mirror_key(token: str) -> str:
        return f"{MIRROR_PREFIX}{token}.json"

    def mirror_put(self, entry: DocumentEntry) -> None:
        if self.mirror is None:
            return
        body = json.dumps(entry.to_record(), sort_keys=True).encode("utf-8")
        self.mirror.put(self.mirror_key(entry.token), body, "application/json")

    def mirror_delete(self, token: str) -> None:
        if self.mirror is None:
            return
        self.mirror.delete(self.mirror_key(token))

    def mirror_get(self, token: str) -> DocumentEntry | None:
        """Return the mirrored entry for ``token`` if one exists and is readable."""

        if self.mirror is None:
            return None
        try:
            raw = self.mirror.get(self.mirror_key(token))
        except BlobNotFound:
            return None
        except StorageError as exc:
            logger.warning("Mirror lookup failed for %s…: %s", token[:8], exc)
            return None
        return self._decode_mirror_record(raw)

    def mirror_list(self, limit: int | None = None) -> list[DocumentEntry]:
        if self.mirror is None:
            return []
        entries: list[DocumentEntry] = []
        for key in self.mirror.list_by_prefix(MIRROR_PREFIX, limit):
            try:
                raw = self.mirror.get(key)
            except StorageError as exc:
                logger.warning("Skipping unreadable mirror record %s: %s", key, exc)
                continue
            entry = self._decode_mirror_record(raw)
            if entry is not None:
                entries.append(entry)
        return entries

    @staticmethod
    def _decode_mirror_record(raw: bytes) -> DocumentEntry | None:
        try:
            return DocumentEntry.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Ignoring malformed mirror record: %s", exc)
            return None


__all__ = ["MIRROR_PREFIX", "MetadataIndex", "MetadataStore"]
