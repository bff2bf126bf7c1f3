"""Shared data type definitions (FileUnit, UploadResult, PeerRecord, AddItem)."""

from dataclasses import dataclass
from typing import AsyncIterator, Callable


@dataclass(frozen=True)
class UploadResult:
    """
    Record produced by the storage engine for one ingested path.
    """
    path: str
    content_hash: str
    size: int


@dataclass(frozen=True)
class PeerRecord:
    """
    Entry from the engine's connected-peer list.
    """
    peer_id: str
    address: str = ""


@dataclass
class AddItem:
    """
    A path plus the byte stream the engine should store under it.
    """
    path: str
    content: AsyncIterator[bytes]


class FileUnit:
    """
    Uniform streamable unit produced by FileSource.normalize.

    The content stream is single use: it is opened lazily by ``chunks`` and can
    only be consumed once.
    """

    def __init__(self, name: str, size: int, reader: Callable[[int], AsyncIterator[bytes]]):
        if size < 0:
            raise ValueError(f"size must be >= 0, got {size}")
        self._name = name
        self._size = size
        self._reader = reader
        self._consumed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def size(self) -> int:
        return self._size

    @property
    def consumed(self) -> bool:
        return self._consumed

    def chunks(self, chunk_size: int) -> AsyncIterator[bytes]:
        """
        Return the lazy byte sequence, split into pieces of at most chunk_size.

        Raises:
            UploadIOError: If the unit was already consumed
        """
        from uploader.exceptions import UploadIOError

        if self._consumed:
            raise UploadIOError(f"File unit '{self._name}' was already consumed")
        self._consumed = True
        return self._reader(chunk_size)

    def __repr__(self) -> str:
        return f"FileUnit(name={self._name!r}, size={self._size})"


def percent_complete(done: int, total: int) -> int:
    """Integer percentage, floored; an empty file is always 100% complete."""
    if total <= 0:
        return 100
    return (done * 100) // total


