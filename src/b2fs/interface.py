"""Filesystem-style adapter protocol for b2fs."""

import asyncio
from collections.abc import AsyncIterator
from typing import Any, Protocol

from b2fs.models import ListingEntry, WriteOptions


class ObjectStorageAdapter(Protocol):
    """Filesystem verbs over a flat object store.

    Paths are relative to the adapter's prefix. Lookups return ``None`` or
    ``False`` for absent paths; mutating verbs raise ``B2FSError``
    subclasses when the store call fails.
    """

    async def list_contents(
        self, directory: str = "", recursive: bool = True
    ) -> list[ListingEntry]: ...

    async def has(self, path: str) -> bool: ...

    async def get_metadata(self, path: str) -> ListingEntry | None: ...

    async def get_size(self, path: str) -> int | None: ...

    async def get_mimetype(self, path: str) -> str | None: ...

    async def get_timestamp(self, path: str) -> int | None: ...

    async def rename(self, path: str, new_path: str) -> bool: ...

    async def copy(self, path: str, new_path: str) -> bool: ...

    async def delete(self, path: str) -> bool: ...

    async def delete_dir(self, dirname: str) -> bool: ...

    async def create_dir(self, dirname: str) -> ListingEntry: ...

    async def write(
        self, path: str, contents: bytes | str, options: WriteOptions | None = None
    ) -> ListingEntry: ...

    async def write_stream(
        self,
        path: str,
        stream: Any,
        options: WriteOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ListingEntry: ...

    async def update(
        self, path: str, contents: bytes | str, options: WriteOptions | None = None
    ) -> ListingEntry: ...

    async def update_stream(
        self,
        path: str,
        stream: Any,
        options: WriteOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ListingEntry: ...

    async def read(self, path: str) -> bytes | None: ...

    async def read_stream(self, path: str) -> AsyncIterator[bytes] | None: ...
