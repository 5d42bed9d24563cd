"""In-memory store client for b2fs.

Implements the StoreClient protocol with Python dictionaries and follows
the B2 rules the adapter relies on:

    - Uploading to an existing name keeps the old version; listings show
      the newest version of each name only.
    - Deleting the newest version makes the previous one visible again.
    - Large files need at least two parts, every part but the last must be
      at least ``min_part_size`` bytes, and the finalize hash list must
      match the SHA-1 of each uploaded part.
    - Upload-part targets are single use.

State lives only as long as the process.
"""

import hashlib
import logging
import time
import uuid
from collections.abc import AsyncIterator

from b2fs.errors import HashMismatch, NotFound, TransportError
from b2fs.models import (
    HIDE_MARKER_CONTENT_TYPE,
    SRC_LAST_MODIFIED_INFO,
    ObjectRecord,
    UploadTarget,
)

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB (matches the B2 client)
_CHUNK_SIZE = 64 * 1024


class MemoryStoreClient:
    """Store client that keeps every file version in memory.

    Attributes:
        min_part_size: Minimum size of every large-file part but the last.
    """

    def __init__(self, min_part_size: int = 5_000_000) -> None:
        self.min_part_size = min_part_size
        # key -> versions, oldest first: (record, data)
        self._versions: dict[str, list[tuple[ObjectRecord, bytes]]] = {}
        # file_id -> (key, content_type, file_info)
        self._large_files: dict[str, tuple[str, str, dict[str, str]]] = {}
        # file_id -> {part_number: (sha1, data)}
        self._parts: dict[str, dict[int, tuple[str, bytes]]] = {}
        # token -> file_id, removed once used
        self._targets: dict[str, str] = {}

    async def init(self) -> None:
        logger.info("Memory store client initialized")

    async def close(self) -> None:
        pass

    def _store(
        self,
        key: str,
        data: bytes,
        content_type: str,
        file_info: dict[str, str],
        content_sha1: str,
    ) -> ObjectRecord:
        record = ObjectRecord(
            key=key,
            size=len(data),
            upload_timestamp_ms=int(time.time() * 1000),
            content_type=content_type,
            is_hidden=content_type == HIDE_MARKER_CONTENT_TYPE,
            file_id=uuid.uuid4().hex,
            content_sha1=content_sha1,
            file_info=dict(file_info),
        )
        self._versions.setdefault(key, []).append((record, data))
        return record

    def hide(self, key: str) -> ObjectRecord:
        """Record a hide marker for ``key``, as ``b2_hide_file`` would."""
        return self._store(key, b"", HIDE_MARKER_CONTENT_TYPE, {}, "none")

    def _latest(self, key: str) -> tuple[ObjectRecord, bytes]:
        versions = self._versions.get(key)
        if not versions:
            raise NotFound(key)
        return versions[-1]

    async def list_objects(
        self, prefix: str | None = None, exact_name: str | None = None
    ) -> list[ObjectRecord]:
        if exact_name is not None:
            versions = self._versions.get(exact_name)
            return [versions[-1][0]] if versions else []
        return [
            versions[-1][0]
            for key, versions in sorted(self._versions.items())
            if versions and key.startswith(prefix or "")
        ]

    async def list_object_versions(
        self, prefix: str | None = None, exact_name: str | None = None
    ) -> list[ObjectRecord]:
        if exact_name is not None:
            keys = [exact_name] if exact_name in self._versions else []
        else:
            keys = [k for k in sorted(self._versions) if k.startswith(prefix or "")]
        return [record for key in keys for record, _ in reversed(self._versions[key])]

    async def start_large_upload(
        self, key: str, content_type: str, file_info: dict[str, str] | None = None
    ) -> str:
        file_id = uuid.uuid4().hex
        self._large_files[file_id] = (key, content_type, dict(file_info or {}))
        self._parts[file_id] = {}
        return file_id

    async def get_upload_part_target(self, file_id: str) -> UploadTarget:
        if file_id not in self._large_files:
            raise TransportError(f"No active large file {file_id}", http_status=400)
        token = uuid.uuid4().hex
        self._targets[token] = file_id
        return UploadTarget(upload_url=f"memory://upload-part/{file_id}", auth_token=token)

    async def upload_part(
        self, target: UploadTarget, part_number: int, data: bytes, sha1_hex: str
    ) -> None:
        file_id = self._targets.pop(target.auth_token, None)
        if file_id is None:
            raise TransportError("Upload token is not valid", http_status=401)
        if hashlib.sha1(data).hexdigest() != sha1_hex:
            raise HashMismatch(f"Checksum did not match data received for part {part_number}")
        self._parts[file_id][part_number] = (sha1_hex, data)

    async def finish_large_upload(
        self, file_id: str, part_sha1s: list[str]
    ) -> ObjectRecord:
        if file_id not in self._large_files:
            raise TransportError(f"No active large file {file_id}", http_status=400)
        parts = self._parts[file_id]
        if len(part_sha1s) < 2:
            raise TransportError("large files must have at least 2 parts", http_status=400)
        if sorted(parts) != list(range(1, len(part_sha1s) + 1)):
            raise TransportError("Missing or extra parts", http_status=400)
        for number, expected in enumerate(part_sha1s, start=1):
            if parts[number][0] != expected:
                raise HashMismatch(f"Part sha1 mismatch for part {number}")
        for number in range(1, len(part_sha1s)):
            if len(parts[number][1]) < self.min_part_size:
                raise TransportError(
                    f"Part {number} is smaller than the minimum part size",
                    http_status=400,
                )

        key, content_type, file_info = self._large_files.pop(file_id)
        body = b"".join(parts[n][1] for n in range(1, len(part_sha1s) + 1))
        del self._parts[file_id]
        return self._store(key, body, content_type, file_info, "none")

    async def upload_small_object(
        self,
        key: str,
        data: bytes,
        sha1_hex: str,
        content_type: str,
        last_modified_ms: int | None = None,
    ) -> ObjectRecord:
        if hashlib.sha1(data).hexdigest() != sha1_hex:
            raise HashMismatch("Checksum did not match data received")
        file_info = {}
        if last_modified_ms is not None:
            file_info[SRC_LAST_MODIFIED_INFO] = str(last_modified_ms)
        return self._store(key, data, content_type, file_info, sha1_hex)

    async def copy_object(self, source_file_id: str, destination_key: str) -> ObjectRecord:
        for versions in self._versions.values():
            for record, data in versions:
                if record.file_id == source_file_id:
                    return self._store(
                        destination_key,
                        data,
                        record.content_type,
                        record.file_info,
                        record.content_sha1,
                    )
        raise NotFound(source_file_id)

    async def delete_object(self, record: ObjectRecord) -> None:
        versions = self._versions.get(record.key, [])
        for i, (stored, _) in enumerate(versions):
            if stored.file_id == record.file_id:
                del versions[i]
                if not versions:
                    del self._versions[record.key]
                return
        raise NotFound(record.key)

    async def download_object(self, key: str) -> bytes:
        record, data = self._latest(key)
        if record.is_hidden:
            raise NotFound(key)
        return data

    async def open_download_stream(self, key: str) -> AsyncIterator[bytes]:
        data = await self.download_object(key)
        return self._iter_chunks(data)

    async def _iter_chunks(self, data: bytes) -> AsyncIterator[bytes]:
        for offset in range(0, len(data), _CHUNK_SIZE):
            yield data[offset : offset + _CHUNK_SIZE]
