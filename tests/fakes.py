"""In-memory StorageEngine used across the test suite."""

import asyncio
import hashlib
import os
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

from common.protocol import ProtocolCommand
from common.types import AddItem, PeerRecord, UploadResult
from uploader.engine import AddStream, InboundHandler, StorageEngine

WORKER_ID = "QmWorkerPeer"
WORKER_ADDRESS = f"/ip4/127.0.0.1/tcp/4003/ipfs/{WORKER_ID}"


def fake_hash(data: bytes) -> str:
    """Deterministic stand-in for a content identifier."""
    return "Qm" + hashlib.sha256(data).hexdigest()[:44]


class FakeAddStream(AddStream):
    """Yields a record per written file, then one per parent directory."""

    def __init__(self, engine: 'FakeEngine'):
        self.engine = engine
        self.items: List[AddItem] = []
        self.closed = False

    async def write(self, item: AddItem) -> None:
        self.items.append(item)

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self) -> AsyncIterator[UploadResult]:
        return self._records()

    async def _records(self) -> AsyncIterator[UploadResult]:
        while not self.closed:
            # let the feeder task run
            await asyncio.sleep(0)
        directories: Dict[str, List[UploadResult]] = {}
        for item in self.items:
            record = await self.engine.store(item)
            directories.setdefault(os.path.dirname(item.path), []).append(record)
            yield record
        for directory, records in directories.items():
            joined = "".join(r.content_hash for r in records).encode()
            yield UploadResult(path=directory, content_hash=fake_hash(joined), size=sum(r.size for r in records))


class FakeEngine(StorageEngine):
    """
    In-memory StorageEngine.

    Records everything the uploader asks of it so tests can assert on calls.
    """

    def __init__(self, peers: Optional[Sequence[PeerRecord]] = None):
        self.blobs: Dict[str, bytes] = {}
        self.chunk_sizes: List[int] = []
        self.peers: List[PeerRecord] = list(peers or [])
        self.connected: List[str] = []
        self.sent: List[tuple] = []
        self.handlers: Dict[int, InboundHandler] = {}
        self.unreachable: set = set()
        self.connect_failures = 0
        self.send_failures = 0
        self.fail_add: Optional[Exception] = None
        self.on_send: Optional[Callable[[str, ProtocolCommand], None]] = None
        self.streams: List[FakeAddStream] = []
        self._next_handle = 0

    async def store(self, item: AddItem) -> UploadResult:
        data = b""
        async for chunk in item.content:
            self.chunk_sizes.append(len(chunk))
            data += chunk
        content_hash = fake_hash(data)
        self.blobs[content_hash] = data
        return UploadResult(path=item.path, content_hash=content_hash, size=len(data))

    async def add_chunked(self, items: Sequence[AddItem], max_chunk_size: int) -> AsyncIterator[UploadResult]:
        for item in items:
            if self.fail_add is not None:
                raise self.fail_add
            yield await self.store(item)

    def open_add_stream(self) -> FakeAddStream:
        stream = FakeAddStream(self)
        self.streams.append(stream)
        return stream

    async def connect_peer(self, address: str) -> None:
        self.connected.append(address)
        if address in self.unreachable:
            raise RuntimeError(f"dial {address}: connection refused")
        if self.connect_failures:
            self.connect_failures -= 1
            raise RuntimeError(f"dial {address}: temporary failure")

    async def list_peers(self) -> List[PeerRecord]:
        return list(self.peers)

    async def send_peer_message(self, peer_id: str, command: ProtocolCommand) -> None:
        if self.send_failures:
            self.send_failures -= 1
            raise RuntimeError("stream reset")
        self.sent.append((peer_id, command))
        if self.on_send is not None:
            self.on_send(peer_id, command)

    def on_inbound_message(self, handler: InboundHandler) -> int:
        self._next_handle += 1
        self.handlers[self._next_handle] = handler
        return self._next_handle

    def remove_inbound_handler(self, handle: Any) -> None:
        self.handlers.pop(handle, None)

    def deliver(self, command_name: str, args: Dict[str, Any], peer_id: str = WORKER_ID) -> None:
        """Simulate a message arriving from a peer."""
        command = ProtocolCommand.create(command_name, args)
        for handler in list(self.handlers.values()):
            handler(peer_id, command)

    def sent_commands(self) -> List[tuple]:
        """(peer id, command name, args) for every message sent."""
        return [(peer_id, cmd.command_name, cmd.args()) for peer_id, cmd in self.sent]



    def reply(self, command_name: str, **fields: Any) -> None:
        """Make the fake worker answer every sent message with one command for the same hash."""
        def on_send(peer_id: str, cmd: ProtocolCommand) -> None:
            self.deliver(command_name, dict(fields, hash=cmd.args()['hash']), peer_id=peer_id)
        self.on_send = on_send
