"""Shared pytest fixtures for b2fs tests.

Most tests run against ``MemoryStoreClient``. ``RecordingStoreClient``
wraps it to record the order of store calls so the upload protocol can be
checked step by step.
"""

import asyncio

import pytest

from b2fs.adapter import B2Adapter
from b2fs.store.memory import MemoryStoreClient
from b2fs.upload import LargeFileUploader


class RecordingStoreClient(MemoryStoreClient):
    """Memory store client that records every call made against it.

    Attributes:
        calls: ``(method, args)`` tuples in call order.
        part_delays: Optional seconds to sleep per part number before the
            part upload completes, to force out-of-order completion.
        fail_part: Part number whose upload raises, if any.
    """

    def __init__(self, min_part_size: int = 5_000_000) -> None:
        super().__init__(min_part_size=min_part_size)
        self.calls: list[tuple[str, tuple]] = []
        self.part_delays: dict[int, float] = {}
        self.fail_part: int | None = None
        self.targets = []
        self.uploaded_parts: dict[int, bytes] = {}

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def start_large_upload(self, key, content_type, file_info=None):
        self.calls.append(("start_large_upload", (key, content_type, file_info)))
        return await super().start_large_upload(key, content_type, file_info)

    async def get_upload_part_target(self, file_id):
        self.calls.append(("get_upload_part_target", (file_id,)))
        target = await super().get_upload_part_target(file_id)
        self.targets.append(target)
        return target

    async def upload_part(self, target, part_number, data, sha1_hex):
        self.calls.append(("upload_part", (part_number, len(data), sha1_hex)))
        delay = self.part_delays.get(part_number)
        if delay:
            await asyncio.sleep(delay)
        if part_number == self.fail_part:
            from b2fs.errors import TransportError

            raise TransportError("upload part failed", http_status=503)
        self.uploaded_parts[part_number] = data
        await super().upload_part(target, part_number, data, sha1_hex)

    async def finish_large_upload(self, file_id, part_sha1s):
        self.calls.append(("finish_large_upload", (file_id, list(part_sha1s))))
        return await super().finish_large_upload(file_id, part_sha1s)

    async def upload_small_object(self, key, data, sha1_hex, content_type, last_modified_ms=None):
        self.calls.append(("upload_small_object", (key, len(data), sha1_hex)))
        return await super().upload_small_object(
            key, data, sha1_hex, content_type, last_modified_ms
        )


@pytest.fixture
def store() -> RecordingStoreClient:
    """A fresh recording store with the B2 minimum part size."""
    return RecordingStoreClient()


@pytest.fixture
def small_store() -> RecordingStoreClient:
    """A recording store accepting tiny parts, for fast protocol tests."""
    return RecordingStoreClient(min_part_size=5)


@pytest.fixture
def small_uploader(small_store) -> LargeFileUploader:
    """Uploader with 10/5-byte parts over ``small_store``."""
    return LargeFileUploader(small_store, part_size=10, min_part_size=5)


@pytest.fixture
def adapter(store) -> B2Adapter:
    """Adapter scoped under ``user42/`` with the standard part sizes."""
    return B2Adapter(store, prefix="user42/")


@pytest.fixture
def small_adapter(small_store, small_uploader) -> B2Adapter:
    """Adapter scoped under ``user42/`` using tiny parts."""
    return B2Adapter(small_store, prefix="user42/", uploader=small_uploader)
