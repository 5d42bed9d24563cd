"""Abstract store client protocol for b2fs."""

from collections.abc import AsyncIterator
from typing import Protocol

from b2fs.models import ObjectRecord, UploadTarget


class StoreClient(Protocol):
    """Protocol defining the calls b2fs makes against the object store.

    All keys are full store keys; prefixing happens in the adapter. Every
    method raises a ``b2fs.errors.B2FSError`` subclass on failure.
    """

    async def init(self) -> None:
        """Authorize and resolve the bucket."""
        ...

    async def close(self) -> None:
        """Release resources held by the client."""
        ...

    async def list_objects(
        self, prefix: str | None = None, exact_name: str | None = None
    ) -> list[ObjectRecord]:
        """List files in the bucket, hide markers included.

        Args:
            prefix: Only return keys starting with this prefix.
            exact_name: Only return the file with exactly this key.

        Returns:
            Records ordered by key.
        """
        ...

    async def list_object_versions(
        self, prefix: str | None = None, exact_name: str | None = None
    ) -> list[ObjectRecord]:
        """List every stored version, hide markers included.

        Same filters as ``list_objects``. Records are ordered by key, then
        newest first.
        """
        ...

    async def start_large_upload(
        self, key: str, content_type: str, file_info: dict[str, str] | None = None
    ) -> str:
        """Open a large-file session and return its file id."""
        ...

    async def get_upload_part_target(self, file_id: str) -> UploadTarget:
        """Request a fresh upload URL and token for one part of ``file_id``."""
        ...

    async def upload_part(
        self, target: UploadTarget, part_number: int, data: bytes, sha1_hex: str
    ) -> None:
        """Upload one part of a large file.

        Args:
            target: The target returned by ``get_upload_part_target``.
            part_number: 1-based part number.
            data: The exact part bytes.
            sha1_hex: SHA-1 hex digest of ``data``.
        """
        ...

    async def finish_large_upload(
        self, file_id: str, part_sha1s: list[str]
    ) -> ObjectRecord:
        """Finalize a large file from its part hashes in part order."""
        ...

    async def upload_small_object(
        self,
        key: str,
        data: bytes,
        sha1_hex: str,
        content_type: str,
        last_modified_ms: int | None = None,
    ) -> ObjectRecord:
        """Upload a whole object in a single request."""
        ...

    async def copy_object(self, source_file_id: str, destination_key: str) -> ObjectRecord:
        """Server-side copy of a file version to a new key."""
        ...

    async def delete_object(self, record: ObjectRecord) -> None:
        """Delete one file version."""
        ...

    async def download_object(self, key: str) -> bytes:
        """Download a whole object by key."""
        ...

    async def open_download_stream(self, key: str) -> AsyncIterator[bytes]:
        """Open an object for streaming by key.

        The response status is checked before returning, so an absent key
        raises ``NotFound`` here rather than on the first chunk.

        Returns:
            An async iterator yielding byte chunks.
        """
        ...
