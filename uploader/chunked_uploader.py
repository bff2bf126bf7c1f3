"""
Chunked ingestion of file units into the storage engine.

Files are added one at a time, in input order. Progress is reported per chunk as
the engine consumes each file's content stream.
"""

import asyncio
import os
from typing import AsyncIterator, List, Optional, Sequence

from common.constants import CHUNK_SIZE_BYTES
from common.logging_config import get_logger
from common.types import AddItem, FileUnit, UploadResult, percent_complete
from uploader.engine import StorageEngine
from uploader.event_bus import JobEventBus
from uploader.exceptions import EngineError, NotFoundError, UploadIOError, UploaderError

logger = get_logger(__name__)

UPLOAD_EVENTS = ('start', 'progress', 'fileReady', 'done', 'error')


class ChunkedUploader:
    """
    Drives FileUnits through the engine's chunked-add operation.
    """

    def __init__(self, engine: StorageEngine, chunk_size: int = CHUNK_SIZE_BYTES):
        """
        Initialize the uploader.

        Args:
            engine: Storage engine handle shared by all jobs
            chunk_size: Maximum chunk size for reads and engine chunking
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.engine = engine
        self.chunk_size = chunk_size

    def ingest(self, units: Sequence[FileUnit], bus: Optional[JobEventBus] = None) -> JobEventBus:
        """
        Start ingesting units and return the bus reporting on them.

        The work starts on the next loop iteration, so listeners attached right
        after this call see every event. Emits start, progress(chunk_length,
        percent), fileReady(UploadResult), done(list[UploadResult]) or error(err).

        Args:
            units: File units, uploaded sequentially in this order
            bus: Existing bus to report on (defaults to a new upload bus)

        Returns:
            The job's JobEventBus; its ``task`` attribute holds the running task
        """
        if bus is None:
            bus = JobEventBus(name="upload", terminal_events=('done', 'error'))
        bus.task = asyncio.get_running_loop().create_task(self._run(list(units), bus))
        return bus

    async def _run(self, units: List[FileUnit], bus: JobEventBus) -> Optional[List[UploadResult]]:
        bus.emit('start')
        results: List[UploadResult] = []

        for unit in units:
            if bus.closed:
                logger.info(f"Upload stopped before {unit.name}: bus closed by {bus.terminal[0]}")
                return None
            logger.info(f"Adding {unit.name} ({unit.size} bytes)")
            try:
                result = await self._add_unit(unit, bus)
            except UploaderError as e:
                logger.error(f"Adding {unit.name} failed: {e}")
                bus.emit('error', e)
                return None
            except OSError as e:
                logger.error(f"Adding {unit.name} failed: {e}")
                bus.emit('error', UploadIOError(f"Read failed for {unit.name}: {e}"))
                return None
            except Exception as e:
                logger.error(f"Engine failed while adding {unit.name}: {e}", exc_info=True)
                bus.emit('error', EngineError(f"Adding {unit.name} failed: {e}"))
                return None

            logger.info(f"Adding {result.path} finished as {result.content_hash}, size: {result.size}")
            bus.emit('fileReady', result)
            results.append(result)

        logger.info(f"Uploader is done ({len(results)} file(s))")
        bus.emit('done', results)
        return results

    async def _add_unit(self, unit: FileUnit, bus: JobEventBus) -> UploadResult:
        total = 0
        read_error: Optional[Exception] = None

        async def content() -> AsyncIterator[bytes]:
            nonlocal total, read_error
            try:
                async for chunk in unit.chunks(self.chunk_size):
                    total += len(chunk)
                    bus.emit('progress', len(chunk), percent_complete(total, unit.size))
                    yield chunk
            except (OSError, UploadIOError) as e:
                read_error = e
                raise

        try:
            added = [
                record
                async for record in self.engine.add_chunked(
                    [AddItem(path=unit.name, content=content())],
                    max_chunk_size=self.chunk_size
                )
            ]
        except Exception as e:
            # the engine may wrap errors raised while it reads the body
            if read_error is None or e is read_error:
                raise
            if isinstance(read_error, UploadIOError):
                raise read_error from e
            raise UploadIOError(f"Read failed for {unit.name}: {read_error}") from read_error
        if not added:
            raise EngineError(f"Engine returned no record for {unit.name}")
        return added[0]

    async def add_directory(self, dir_path: str) -> UploadResult:
        """
        Add every regular file of a directory through one shared add-stream.

        Entries that can't be opened are logged and skipped.

        Args:
            dir_path: Directory to add

        Returns:
            The engine record whose path equals dir_path

        Raises:
            NotFoundError: If the directory does not exist
            UploadIOError: If the directory can't be listed or no root record arrives
        """
        try:
            names = sorted(os.listdir(dir_path))
        except FileNotFoundError as e:
            raise NotFoundError(f"Directory not found: {dir_path}") from e
        except OSError as e:
            raise UploadIOError(f"Cannot list {dir_path}: {e}") from e

        stream = self.engine.open_add_stream()
        opened = []

        async def feed() -> None:
            try:
                for name in names:
                    entry_path = os.path.join(dir_path, name)
                    if not os.path.isfile(entry_path):
                        logger.warning(f"Skipping {entry_path}: not a regular file")
                        continue
                    try:
                        handle = open(entry_path, 'rb')
                    except OSError as e:
                        logger.error(f"Skipping {entry_path}: {e}")
                        continue
                    logger.debug(f"Reading file {entry_path}")
                    content = self._read_entry(entry_path, handle)
                    opened.append((handle, content))
                    await stream.write(AddItem(path=entry_path, content=content))
            finally:
                await stream.close()

        feeder = asyncio.get_running_loop().create_task(feed())
        root: Optional[UploadResult] = None
        try:
            async for record in stream:
                logger.debug(f"Directory entry added: {record.path} -> {record.content_hash}")
                if record.path == dir_path:
                    root = record
        finally:
            await feeder
            # entries the engine never finished reading still hold their handles
            for handle, content in opened:
                await content.aclose()
                handle.close()

        if root is None:
            raise UploadIOError(f"Engine reported no record for directory {dir_path}")
        logger.info(f"Added directory {dir_path} as {root.content_hash}")
        return root

    async def _read_entry(self, entry_path: str, handle) -> AsyncIterator[bytes]:
        loop = asyncio.get_running_loop()
        try:
            while True:
                try:
                    chunk = await loop.run_in_executor(None, handle.read, self.chunk_size)
                except OSError as e:
                    logger.error(f"Read error on {entry_path}, entry truncated: {e}")
                    return
                if not chunk:
                    return
                yield chunk
        finally:
            handle.close()
