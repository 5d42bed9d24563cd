"""Filesystem-style adapter over a B2 bucket.

Maps filesystem verbs onto store calls:

    - small writes go out as a single upload with a whole-body SHA-1,
    - streamed writes go through the large-file uploader,
    - lookups search for the exact key and skip hide markers,
    - listings are prefix-scoped and get emulated directory entries.

B2 has no in-place update: writing to an existing key adds a new version
and the previous one stays until it is deleted or expires.
"""

import asyncio
import hashlib
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from typing import Any

from b2fs import metrics
from b2fs.errors import InvalidState, NotFound, SizeUnknown
from b2fs.models import ListingEntry, ObjectRecord, WriteOptions
from b2fs.paths import PathPrefixer, emulate_directories, normalize_path, parent_dir
from b2fs.store.backend import StoreClient
from b2fs.upload import LargeFileUploader, resolve_stream_size

logger = logging.getLogger(__name__)


@contextmanager
def _observe(operation: str) -> Iterator[None]:
    """Count an adapter operation by outcome."""
    try:
        yield
    except Exception:
        metrics.record_operation(operation, "error")
        raise
    metrics.record_operation(operation, "ok")


class B2Adapter:
    """Filesystem adapter for one bucket, scoped under a path prefix.

    Attributes:
        prefixer: Maps caller paths to store keys and back.
    """

    def __init__(
        self,
        client: StoreClient,
        prefix: str = "",
        uploader: LargeFileUploader | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            client: An initialized store client.
            prefix: Base path prepended to every caller path.
            uploader: Large-file uploader; defaults to one with the
                standard part sizes over ``client``.
        """
        self._client = client
        self.prefixer = PathPrefixer(prefix)
        self._uploader = uploader or LargeFileUploader(client)

    # -- helpers --------------------------------------------------------------

    def _to_entry(self, record: ObjectRecord) -> ListingEntry:
        path = self.prefixer.remove(record.key)
        return ListingEntry(
            type="file",
            path=path,
            dirname=parent_dir(path),
            timestamp=record.upload_timestamp_ms // 1000,
            size=record.size,
            mimetype=record.content_type,
        )

    def _dir_prefix(self, directory: str) -> str:
        """Store prefix covering everything under ``directory``."""
        if not normalize_path(directory).strip("/"):
            return self.prefixer.apply("")
        return self.prefixer.apply(directory).rstrip("/") + "/"

    async def _find(self, path: str) -> ObjectRecord | None:
        """Return the visible record stored at exactly ``path``."""
        records = await self._client.list_objects(exact_name=self.prefixer.apply(path))
        for record in records:
            if not record.is_hidden:
                return record
        return None

    async def _delete_versions(self, key: str) -> int:
        """Delete every stored version of ``key``, hide markers included."""
        versions = await self._client.list_object_versions(exact_name=key)
        for record in versions:
            await self._client.delete_object(record)
        return len(versions)

    # -- metadata read --------------------------------------------------------

    async def list_contents(
        self, directory: str = "", recursive: bool = True
    ) -> list[ListingEntry]:
        """List files and emulated directories under ``directory``.

        Args:
            directory: Directory path relative to the prefix.
            recursive: When False, only direct children are returned.

        Returns:
            File entries followed by synthesized directory entries.
        """
        with _observe("list"):
            records = await self._client.list_objects(prefix=self._dir_prefix(directory))
        entries = emulate_directories(
            self._to_entry(record) for record in records if not record.is_hidden
        )

        base = normalize_path(directory).strip("/")
        if base:
            entries = [e for e in entries if e.path.startswith(base + "/")]
        if not recursive:
            entries = [e for e in entries if e.dirname == base]
        return entries

    async def has(self, path: str) -> bool:
        return await self._find(path) is not None

    async def get_metadata(self, path: str) -> ListingEntry | None:
        record = await self._find(path)
        return self._to_entry(record) if record is not None else None

    async def get_size(self, path: str) -> int | None:
        entry = await self.get_metadata(path)
        return entry.size if entry is not None else None

    async def get_mimetype(self, path: str) -> str | None:
        entry = await self.get_metadata(path)
        return entry.mimetype if entry is not None else None

    async def get_timestamp(self, path: str) -> int | None:
        """Upload time of ``path`` in seconds since the epoch."""
        entry = await self.get_metadata(path)
        return entry.timestamp if entry is not None else None

    # -- metadata modify ------------------------------------------------------

    async def rename(self, path: str, new_path: str) -> bool:
        """Copy ``path`` to ``new_path`` server-side, then delete the source.

        Returns:
            False if ``path`` does not exist.
        """
        with _observe("rename"):
            record = await self._find(path)
            if record is None:
                return False
            await self._client.copy_object(record.file_id, self.prefixer.apply(new_path))
            await self._delete_versions(record.key)
        logger.info("Renamed %s to %s", path, new_path, extra={"operation": "rename", "key": path})
        return True

    async def copy(self, path: str, new_path: str) -> bool:
        with _observe("copy"):
            record = await self._find(path)
            if record is None:
                return False
            await self._client.copy_object(record.file_id, self.prefixer.apply(new_path))
        return True

    async def delete(self, path: str) -> bool:
        """Delete ``path`` with all of its older versions.

        Returns:
            False if ``path`` does not exist.
        """
        with _observe("delete"):
            record = await self._find(path)
            if record is None:
                return False
            await self._delete_versions(record.key)
        return True

    async def delete_dir(self, dirname: str) -> bool:
        """Delete every visible file under ``dirname`` with all its versions.

        Names whose newest version is a hide marker are left alone.

        Raises:
            InvalidState: If there is nothing under ``dirname`` to delete.
        """
        with _observe("delete_dir"):
            records = await self._client.list_objects(prefix=self._dir_prefix(dirname))
            visible = [r for r in records if not r.is_hidden]
            if not visible:
                raise InvalidState(f"No files to delete under '{dirname}'")
            for record in visible:
                await self._delete_versions(record.key)
        logger.info(
            "Deleted %d files under %s",
            len(visible),
            dirname,
            extra={"operation": "delete_dir", "key": dirname},
        )
        return True

    async def create_dir(self, dirname: str) -> ListingEntry:
        """Return a directory entry; B2 has nothing to create."""
        path = normalize_path(dirname).rstrip("/")
        return ListingEntry(type="dir", path=path, dirname=parent_dir(path))

    # -- data write -----------------------------------------------------------

    async def write(
        self, path: str, contents: bytes | str, options: WriteOptions | None = None
    ) -> ListingEntry:
        """Upload ``contents`` in a single request."""
        options = options or WriteOptions()
        data = contents.encode("utf-8") if isinstance(contents, str) else bytes(contents)
        with _observe("write"):
            record = await self._client.upload_small_object(
                self.prefixer.apply(path),
                data,
                hashlib.sha1(data).hexdigest(),
                options.mimetype,
                options.timestamp,
            )
        metrics.record_upload(len(data))
        return self._to_entry(record)

    async def write_stream(
        self,
        path: str,
        stream: Any,
        options: WriteOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ListingEntry:
        """Upload a stream of known length through the large-file uploader.

        Raises:
            SizeUnknown: If the stream length cannot be determined and
                ``options.size`` is not set.
        """
        options = options or WriteOptions()
        try:
            size = resolve_stream_size(stream, options.size)
        except SizeUnknown as e:
            raise SizeUnknown(path) from e
        if size == 0:
            return await self.write(path, b"", options)

        with _observe("write_stream"):
            record = await self._uploader.upload(
                stream,
                size,
                self.prefixer.apply(path),
                content_type=options.mimetype,
                modified_ms=options.timestamp,
                cancel_event=cancel_event,
            )
        return self._to_entry(record)

    async def update(
        self, path: str, contents: bytes | str, options: WriteOptions | None = None
    ) -> ListingEntry:
        return await self.write(path, contents, options)

    async def update_stream(
        self,
        path: str,
        stream: Any,
        options: WriteOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ListingEntry:
        return await self.write_stream(path, stream, options, cancel_event)

    # -- data read ------------------------------------------------------------

    async def read(self, path: str) -> bytes | None:
        """Download ``path``; None if it does not exist."""
        try:
            with _observe("read"):
                data = await self._client.download_object(self.prefixer.apply(path))
        except NotFound:
            return None
        metrics.record_download(len(data))
        return data

    async def read_stream(self, path: str) -> AsyncIterator[bytes] | None:
        """Open ``path`` for streaming; None if it does not exist."""
        try:
            with _observe("read_stream"):
                return await self._client.open_download_stream(self.prefixer.apply(path))
        except NotFound:
            return None
