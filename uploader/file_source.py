"""Normalizes local paths and open file objects into FileUnits."""

import asyncio
import io
import os
import stat
from typing import AsyncIterator, BinaryIO, Optional, Union

from common.logging_config import get_logger
from common.types import FileUnit
from uploader.exceptions import NotFoundError, UploadIOError

logger = get_logger(__name__)

Source = Union[str, os.PathLike, BinaryIO]


async def _read_handle(handle: BinaryIO, chunk_size: int, close: bool) -> AsyncIterator[bytes]:
    """Read a handle sequentially in the default executor."""
    loop = asyncio.get_running_loop()
    try:
        while True:
            try:
                chunk = await loop.run_in_executor(None, handle.read, chunk_size)
            except OSError as e:
                raise UploadIOError(f"Read failed for {getattr(handle, 'name', '<stream>')}: {e}") from e
            if not chunk:
                break
            yield chunk
    finally:
        if close:
            handle.close()


def _from_path(path: str, name: Optional[str]) -> FileUnit:
    try:
        st = os.stat(path)
    except FileNotFoundError as e:
        raise NotFoundError(f"File not found: {path}") from e
    except OSError as e:
        raise UploadIOError(f"Cannot stat {path}: {e}") from e

    if not stat.S_ISREG(st.st_mode):
        raise UploadIOError(f"Not a regular file: {path}")

    def reader(chunk_size: int) -> AsyncIterator[bytes]:
        try:
            handle = open(path, 'rb')
        except OSError as e:
            raise UploadIOError(f"Cannot open {path}: {e}") from e
        return _read_handle(handle, chunk_size, close=True)

    return FileUnit(name=name or os.path.basename(path), size=st.st_size, reader=reader)


def _handle_size(handle: BinaryIO) -> int:
    try:
        return os.fstat(handle.fileno()).st_size - handle.tell()
    except (AttributeError, OSError, io.UnsupportedOperation):
        pass
    try:
        position = handle.tell()
        end = handle.seek(0, io.SEEK_END)
        handle.seek(position)
        return end - position
    except (AttributeError, OSError, io.UnsupportedOperation) as e:
        raise UploadIOError(f"Cannot determine size of {handle!r}: {e}") from e


def _from_handle(handle: BinaryIO, name: Optional[str]) -> FileUnit:
    if name is None:
        handle_name = getattr(handle, 'name', None)
        name = os.path.basename(handle_name) if isinstance(handle_name, str) else 'blob'

    size = _handle_size(handle)

    def reader(chunk_size: int) -> AsyncIterator[bytes]:
        return _read_handle(handle, chunk_size, close=False)

    return FileUnit(name=name, size=size, reader=reader)


def normalize(source: Source, name: Optional[str] = None) -> FileUnit:
    """
    Normalize a path or an open binary file object into a FileUnit.

    Args:
        source: Filesystem path or binary file object (read from its current position)
        name: Optional display name overriding the derived one

    Returns:
        FileUnit whose content is read lazily

    Raises:
        NotFoundError: If a path does not exist
        UploadIOError: If the source cannot be inspected
    """
    if isinstance(source, (str, os.PathLike)):
        unit = _from_path(os.fspath(source), name)
    elif hasattr(source, 'read'):
        unit = _from_handle(source, name)
    else:
        raise UploadIOError(f"Unsupported file source: {type(source).__name__}")

    logger.debug(f"Normalized source {unit.name} ({unit.size} bytes)")
    return unit
