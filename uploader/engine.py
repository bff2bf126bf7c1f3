"""Storage engine interface consumed by the uploader."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, List, Sequence

from common.protocol import ProtocolCommand
from common.types import AddItem, PeerRecord, UploadResult

InboundHandler = Callable[[str, Any], None]


class AddStream(ABC):
    """
    Duplex add stream: items are written in, engine records come out.

    Records are yielded for every written path and for the parent directories
    the engine creates for them.
    """

    @abstractmethod
    async def write(self, item: AddItem) -> None:
        """Queue a path and its content for ingestion."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Signal that no more items will be written."""
        pass

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[UploadResult]:
        pass


class StorageEngine(ABC):
    """
    Narrow contract to the content-addressed peer-to-peer storage node.
    """

    @abstractmethod
    def add_chunked(self, items: Sequence[AddItem], max_chunk_size: int) -> AsyncIterator[UploadResult]:
        """
        Ingest items, chunking their content at max_chunk_size.

        Yields one UploadResult per item once the engine has stored it.
        """
        pass

    @abstractmethod
    def open_add_stream(self) -> AddStream:
        pass

    @abstractmethod
    async def connect_peer(self, address: str) -> None:
        """Dial a peer by multiaddress. Raises on failure."""
        pass

    @abstractmethod
    async def list_peers(self) -> List[PeerRecord]:
        pass

    @abstractmethod
    async def send_peer_message(self, peer_id: str, command: ProtocolCommand) -> None:
        """Transmit a command to exactly one peer. Raises on failure."""
        pass

    @abstractmethod
    def on_inbound_message(self, handler: InboundHandler) -> Any:
        """
        Register a handler called as handler(peer_id, raw_command).

        Returns:
            Opaque subscription handle for remove_inbound_handler
        """
        pass

    @abstractmethod
    def remove_inbound_handler(self, handle: Any) -> None:
        pass
