"""Large-file upload orchestration for b2fs.

Drives the B2 large-file protocol for one object:

    1. b2_start_large_file opens a session and returns its file id.
    2. For each part: read exactly ``part_size`` bytes (the last part gets
       the remainder), SHA-1 them, request a fresh upload-part URL, upload.
    3. b2_finish_large_file with the part hashes in part-number order.

B2 requires a large file to have at least two parts, and every part but
the last to be at least 5,000,000 bytes. Objects that would end up with a
single part are sent with a single-shot upload instead.

Any failure aborts the upload; the unfinished large file is left for B2
to expire. Nothing is retried.
"""

import asyncio
import hashlib
import inspect
import io
import logging
import os
import stat
import time
from typing import Any

from b2fs import metrics
from b2fs.errors import InvalidState, SizeUnknown, UploadCancelled
from b2fs.logging_config import UploadLogAdapter
from b2fs.models import (
    AUTO_CONTENT_TYPE,
    SRC_LAST_MODIFIED_INFO,
    ObjectRecord,
    PartPlan,
    UploadSession,
)
from b2fs.store.backend import StoreClient

logger = logging.getLogger(__name__)

# Decimal megabytes, as B2 counts them.
DEFAULT_PART_SIZE = 10_000_000
MIN_PART_SIZE = 5_000_000


def plan_parts(
    total_size: int,
    part_size: int = DEFAULT_PART_SIZE,
    min_part_size: int = MIN_PART_SIZE,
) -> PartPlan:
    """Split ``total_size`` bytes into parts.

    Objects smaller than ``part_size`` use ``min_part_size`` parts so that
    they still get two parts where possible.

    Args:
        total_size: Total object length in bytes.
        part_size: Preferred part size.
        min_part_size: Part size used for objects smaller than ``part_size``.

    Returns:
        The part size and the number of parts.
    """
    if total_size < part_size:
        part_size = min_part_size
    return PartPlan(part_size=part_size, part_count=-(-total_size // part_size))


def resolve_stream_size(stream: Any, explicit: int | None = None) -> int:
    """Determine how many bytes remain in ``stream`` without reading it.

    Args:
        stream: A file object or in-memory buffer.
        explicit: A caller-supplied length, which wins when given.

    Returns:
        The number of bytes between the current position and the end.

    Raises:
        SizeUnknown: If the length cannot be determined up front (pipes,
            sockets, generators without an explicit size).
    """
    if explicit is not None:
        return explicit

    position = 0
    try:
        position = stream.tell()
    except (AttributeError, OSError, ValueError):
        pass

    if isinstance(stream, io.BytesIO):
        return stream.getbuffer().nbytes - position

    # Buffered wrappers and spooled files may have no descriptor
    remaining = _seek_remaining(stream, position)
    if remaining is not None:
        return remaining

    try:
        st = os.fstat(stream.fileno())
    except (AttributeError, OSError, ValueError) as e:
        raise SizeUnknown() from e
    if not stat.S_ISREG(st.st_mode):
        raise SizeUnknown()
    return st.st_size - position


def _seek_remaining(stream: Any, position: int) -> int | None:
    """Measure a seekable stream by seeking to its end and back."""
    seekable = getattr(stream, "seekable", None)
    if seekable is None or inspect.iscoroutinefunction(seekable):
        return None
    try:
        if not seekable():
            return None
        end = stream.seek(0, io.SEEK_END)
        stream.seek(position)
    except (OSError, ValueError):
        return None
    return end - position


class _SourceReader:
    """Reads exact-size blocks from a byte source, front to back.

    Accepts binary file-like objects (sync or async ``read``) and async
    iterators of ``bytes`` chunks. Never seeks.
    """

    def __init__(self, source: Any) -> None:
        self._source = source
        self._buffer = bytearray()
        self._iterator = None
        if not hasattr(source, "read"):
            if not hasattr(source, "__aiter__"):
                raise TypeError(f"Unsupported upload source: {type(source).__name__}")
            self._iterator = source.__aiter__()

    async def read(self, size: int) -> bytes:
        """Return ``size`` bytes, or fewer only when the source is exhausted."""
        if self._iterator is not None:
            while len(self._buffer) < size:
                try:
                    chunk = await self._iterator.__anext__()
                except StopAsyncIteration:
                    break
                self._buffer.extend(chunk)
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
            return data

        chunks = []
        remaining = size
        while remaining > 0:
            chunk = self._source.read(remaining)
            if inspect.isawaitable(chunk):
                chunk = await chunk
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)


def _check_cancelled(cancel_event: asyncio.Event | None, file_id: str = "") -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise UploadCancelled(file_id)


class LargeFileUploader:
    """Uploads one object of known size through the large-file protocol.

    Attributes:
        part_size: Preferred part size in bytes.
        min_part_size: Part size for objects smaller than ``part_size``.
        concurrency: Maximum number of parts in flight.
    """

    def __init__(
        self,
        client: StoreClient,
        part_size: int = DEFAULT_PART_SIZE,
        min_part_size: int = MIN_PART_SIZE,
        concurrency: int = 1,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._client = client
        self.part_size = part_size
        self.min_part_size = min_part_size
        self.concurrency = concurrency

    async def upload(
        self,
        source: Any,
        total_size: int | None,
        key: str,
        content_type: str = AUTO_CONTENT_TYPE,
        modified_ms: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ObjectRecord:
        """Upload ``total_size`` bytes from ``source`` to ``key``.

        Args:
            source: Binary file-like object or async iterator of bytes.
            total_size: Exact number of bytes to upload.
            key: Destination store key.
            content_type: MIME type to record.
            modified_ms: Source last-modified time in milliseconds.
            cancel_event: When set, no further parts are started.

        Returns:
            The record of the finished file.

        Raises:
            SizeUnknown: If ``total_size`` is None.
            InvalidState: If ``total_size`` is not positive or the source
                ends early.
            UploadCancelled: If ``cancel_event`` was set.
            TransportError: If any store call fails.
            HashMismatch: If the store rejects the part hash list.
        """
        if total_size is None:
            raise SizeUnknown(key)
        if total_size <= 0:
            raise InvalidState(f"Upload size must be positive, got {total_size}")

        plan = plan_parts(total_size, self.part_size, self.min_part_size)
        reader = _SourceReader(source)
        log = UploadLogAdapter(logger, key)
        _check_cancelled(cancel_event)

        if plan.part_count < 2:
            return await self._upload_single(
                reader, total_size, key, content_type, modified_ms, log
            )

        file_info = None
        if modified_ms is not None:
            file_info = {SRC_LAST_MODIFIED_INFO: str(modified_ms)}

        started = time.monotonic()
        file_id = await self._client.start_large_upload(key, content_type, file_info)
        session = UploadSession(
            file_id=file_id,
            key=key,
            total_size=total_size,
            part_size=plan.part_size,
            part_count=plan.part_count,
        )
        log = log.bind(file_id=file_id)
        log.info(
            "Started large file %s: %d bytes in %d parts of %d",
            key,
            total_size,
            plan.part_count,
            plan.part_size,
            extra={"operation": "start_large_file"},
        )

        await self._upload_parts(session, reader, cancel_event, log)
        _check_cancelled(cancel_event, file_id)

        record = await self._client.finish_large_upload(file_id, session.ordered_hashes())
        duration_ms = int((time.monotonic() - started) * 1000)
        log.info(
            "Finished large file %s in %d ms",
            key,
            duration_ms,
            extra={"operation": "finish_large_file", "duration_ms": duration_ms},
        )
        return record

    async def _upload_single(
        self,
        reader: _SourceReader,
        total_size: int,
        key: str,
        content_type: str,
        modified_ms: int | None,
        log: UploadLogAdapter,
    ) -> ObjectRecord:
        data = await reader.read(total_size)
        if len(data) != total_size:
            raise InvalidState(f"Source ended after {len(data)} of {total_size} bytes")
        log.debug(
            "Uploading %s as a single file (%d bytes)",
            key,
            total_size,
            extra={"operation": "upload_file"},
        )
        record = await self._client.upload_small_object(
            key, data, hashlib.sha1(data).hexdigest(), content_type, modified_ms
        )
        metrics.record_upload(total_size)
        return record

    async def _upload_parts(
        self,
        session: UploadSession,
        reader: _SourceReader,
        cancel_event: asyncio.Event | None,
        log: UploadLogAdapter,
    ) -> None:
        """Read parts in order and upload up to ``concurrency`` at a time."""
        slots = asyncio.Semaphore(self.concurrency)
        tasks: list[asyncio.Task] = []
        try:
            for part_number in range(1, session.part_count + 1):
                await slots.acquire()
                try:
                    for task in tasks:
                        if task.done() and task.exception() is not None:
                            raise task.exception()
                    _check_cancelled(cancel_event, session.file_id)

                    expected = min(
                        session.part_size,
                        session.total_size - (part_number - 1) * session.part_size,
                    )
                    data = await reader.read(expected)
                    if len(data) != expected:
                        read = (part_number - 1) * session.part_size + len(data)
                        raise InvalidState(
                            f"Source ended after {read} of {session.total_size} bytes"
                        )
                except BaseException:
                    slots.release()
                    raise

                sha1_hex = hashlib.sha1(data).hexdigest()
                tasks.append(
                    asyncio.create_task(
                        self._upload_part(
                            session, part_number, data, sha1_hex, slots, cancel_event, log
                        )
                    )
                )
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _upload_part(
        self,
        session: UploadSession,
        part_number: int,
        data: bytes,
        sha1_hex: str,
        slots: asyncio.Semaphore,
        cancel_event: asyncio.Event | None,
        log: UploadLogAdapter,
    ) -> None:
        try:
            _check_cancelled(cancel_event, session.file_id)
            target = await self._client.get_upload_part_target(session.file_id)
            _check_cancelled(cancel_event, session.file_id)
            await self._client.upload_part(target, part_number, data, sha1_hex)
            session.record_part(part_number, sha1_hex)
            metrics.record_upload(len(data), parts=1)
            log.debug(
                "Uploaded part %d/%d of %s (%d bytes)",
                part_number,
                session.part_count,
                session.key,
                len(data),
                extra={"operation": "upload_part", "part_number": part_number},
            )
        finally:
            slots.release()
