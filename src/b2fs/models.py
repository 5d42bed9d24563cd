"""Data model types for b2fs.

These dataclasses represent the records returned by the store (files and
hide markers), the transient state of a large-file upload, and the entries
the adapter hands back to callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Content type B2 assigns to the marker recording that a file was hidden.
HIDE_MARKER_CONTENT_TYPE = "application/x-bz-hide-marker"

# Content type asking B2 to pick a type from the file name extension.
AUTO_CONTENT_TYPE = "b2/x-auto"

# fileInfo key carrying the source's last-modified time.
SRC_LAST_MODIFIED_INFO = "src_last_modified_millis"


@dataclass(frozen=True)
class ObjectRecord:
    """A file (or hide marker) as reported by the store.

    Attributes:
        key: Full store key, prefix included.
        size: Content length in bytes.
        upload_timestamp_ms: Upload time in milliseconds since the epoch.
        content_type: MIME type.
        is_hidden: Whether this record is a hide marker.
        file_id: Store-issued identifier of this file version.
        content_sha1: SHA-1 hex of the content, ``"none"`` for large files.
        file_info: Custom file info key/value pairs.
    """

    key: str
    size: int = 0
    upload_timestamp_ms: int = 0
    content_type: str = "application/octet-stream"
    is_hidden: bool = False
    file_id: str = ""
    content_sha1: str = ""
    file_info: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_b2(cls, data: dict[str, Any]) -> ObjectRecord:
        """Build a record from a B2 file JSON document."""
        content_type = data.get("contentType") or ""
        return cls(
            key=data["fileName"],
            size=int(data.get("contentLength") or 0),
            upload_timestamp_ms=int(data.get("uploadTimestamp") or 0),
            content_type=content_type,
            is_hidden=(
                content_type == HIDE_MARKER_CONTENT_TYPE or data.get("action") == "hide"
            ),
            file_id=data.get("fileId") or "",
            content_sha1=data.get("contentSha1") or "",
            file_info=dict(data.get("fileInfo") or {}),
        )


@dataclass(frozen=True)
class UploadTarget:
    """A short-lived upload URL and the token authorizing it."""

    upload_url: str
    auth_token: str


@dataclass(frozen=True)
class PartPlan:
    """How a large file is split into parts."""

    part_size: int
    part_count: int


@dataclass
class UploadSession:
    """State of one in-flight large-file upload.

    Attributes:
        file_id: Large-file id issued by ``b2_start_large_file``.
        key: Destination store key.
        total_size: Declared total length of the source.
        part_size: Size of every part but the last.
        part_count: Number of parts.
        part_hashes: SHA-1 hex per part; index 0 holds part 1.
    """

    file_id: str
    key: str
    total_size: int
    part_size: int
    part_count: int
    part_hashes: list[str | None] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.part_hashes:
            self.part_hashes = [None] * self.part_count

    def record_part(self, part_number: int, sha1_hex: str) -> None:
        self.part_hashes[part_number - 1] = sha1_hex

    def ordered_hashes(self) -> list[str]:
        """Return the part hashes in ascending part-number order."""
        missing = [i + 1 for i, h in enumerate(self.part_hashes) if h is None]
        if missing:
            raise ValueError(f"Parts not uploaded: {missing}")
        return [h for h in self.part_hashes if h is not None]


@dataclass(frozen=True)
class ListingEntry:
    """A file or emulated directory as seen through the adapter.

    Attributes:
        type: ``"file"`` or ``"dir"``.
        path: Path relative to the adapter prefix.
        dirname: Parent directory of ``path`` (``""`` at the root).
        timestamp: Upload time in seconds, files only.
        size: Size in bytes, files only.
        mimetype: MIME type, files only.
    """

    type: str
    path: str
    dirname: str = ""
    timestamp: int | None = None
    size: int | None = None
    mimetype: str | None = None


@dataclass
class WriteOptions:
    """Per-write settings.

    Attributes:
        mimetype: Content type to store; ``b2/x-auto`` lets B2 decide.
        timestamp: Source last-modified time in milliseconds.
        size: Explicit stream length for streamed writes.
    """

    mimetype: str = AUTO_CONTENT_TYPE
    timestamp: int | None = None
    size: int | None = None
