"""
StorageEngine adapter for a Kubo (go-ipfs) node's HTTP RPC API.

Peer messages travel over pubsub: every node listens on ``<prefix>/<own peer id>``,
so sending to a peer means publishing on that peer's topic. Topic names and
message data are multibase base64url encoded, as the RPC API expects.
"""

import asyncio
import base64
import json
import os
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Set
from urllib.parse import quote

import aiohttp

from common.constants import CHUNK_SIZE_BYTES, KUBO_API_URL, PROTOCOL_TOPIC_PREFIX
from common.logging_config import get_logger
from common.protocol import ProtocolCommand
from common.types import AddItem, PeerRecord, UploadResult
from uploader.engine import AddStream, InboundHandler, StorageEngine
from uploader.exceptions import EngineError

logger = get_logger(__name__)

MULTIBASE_BASE64URL = 'u'
DIRECTORY_CONTENT_TYPE = 'application/x-directory'
SUBSCRIBE_RETRY_INTERVAL = 1.0


def encode_multibase(value) -> str:
    """Encode text or bytes as unpadded multibase base64url."""
    if isinstance(value, str):
        value = value.encode('utf-8')
    return MULTIBASE_BASE64URL + base64.urlsafe_b64encode(value).decode('ascii').rstrip('=')


def decode_multibase(value: str) -> bytes:
    """
    Decode a multibase base64url string.

    Raises:
        ValueError: If the prefix isn't base64url or the body is malformed
    """
    if not value or value[0] != MULTIBASE_BASE64URL:
        raise ValueError(f"Unsupported multibase encoding: {value[:1]!r}")
    body = value[1:]
    return base64.urlsafe_b64decode(body + '=' * (-len(body) % 4))


def peer_topic(prefix: str, peer_id: str) -> str:
    return f"{prefix}/{peer_id}"


def parse_peers(payload: Dict[str, Any]) -> List[PeerRecord]:
    """Convert a /swarm/peers response into PeerRecords."""
    return [
        PeerRecord(peer_id=entry.get('Peer', ''), address=entry.get('Addr', ''))
        for entry in (payload.get('Peers') or [])
    ]


def parse_pubsub_message(line: bytes) -> Optional[tuple]:
    """
    Decode one /pubsub/sub line into (sender peer id, ProtocolCommand).

    Returns None for keep-alive lines and messages that aren't commands.
    """
    line = line.strip()
    if not line:
        return None
    try:
        message = json.loads(line)
        data = decode_multibase(message['data'])
        return message.get('from', ''), ProtocolCommand.from_json(data)
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"Dropping undecodable pubsub message: {e}")
        return None


def _relative_name(path: str) -> str:
    return path.replace(os.sep, '/').lstrip('/')


class KuboAddStream(AddStream):
    """
    Collects written items and adds them as one multipart request once closed.

    The node reports a record for every file and every parent directory; record
    names are mapped back to the paths the items were written with.
    """

    def __init__(self, engine: 'KuboEngine'):
        self.engine = engine
        self._items: List[AddItem] = []
        self._closed = asyncio.Event()
        self._names: Dict[str, str] = {}

    async def write(self, item: AddItem) -> None:
        if self._closed.is_set():
            raise EngineError("Add stream already closed")
        name = _relative_name(item.path)
        self._names[name] = item.path
        absolute = item.path.startswith('/') or item.path.startswith(os.sep)
        parent = os.path.dirname(name)
        while parent:
            self._names.setdefault(parent, '/' + parent if absolute else parent)
            parent = os.path.dirname(parent)
        self._items.append(item)

    async def close(self) -> None:
        self._closed.set()

    def __aiter__(self) -> AsyncIterator[UploadResult]:
        return self._records()

    def directories(self) -> List[str]:
        """Relative directory names implied by the written paths, parents first."""
        files = {_relative_name(item.path) for item in self._items}
        return sorted(name for name in self._names if name not in files)

    async def _records(self) -> AsyncIterator[UploadResult]:
        await self._closed.wait()
        if not self._items:
            return
        writer = aiohttp.MultipartWriter('form-data')
        for directory in self.directories():
            part = writer.append(b'', {'Content-Type': DIRECTORY_CONTENT_TYPE})
            part.set_content_disposition('form-data', name='file', filename=quote(directory, safe=''))
        for item in self._items:
            part = writer.append(item.content, {'Content-Type': 'application/octet-stream'})
            part.set_content_disposition(
                'form-data', name='file', filename=quote(_relative_name(item.path), safe='')
            )

        async for record in self.engine._add(writer, self.engine.chunk_size):
            name = record['Name']
            yield UploadResult(
                path=self._names.get(name, name),
                content_hash=record['Hash'],
                size=int(record.get('Size', 0))
            )


class KuboEngine(StorageEngine):
    """
    Talks to a local Kubo node over HTTP with aiohttp.
    """

    def __init__(
        self,
        api_url: str = KUBO_API_URL,
        topic_prefix: str = PROTOCOL_TOPIC_PREFIX,
        chunk_size: int = CHUNK_SIZE_BYTES,
        request_timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize the engine.

        Args:
            api_url: Base URL of the node's RPC API
            topic_prefix: Pubsub topic prefix shared with the workers
            chunk_size: Chunker size used by directory adds
            request_timeout: Timeout for non-streaming RPC calls in seconds
            session: Existing aiohttp session (one is created on start otherwise)
        """
        self.api_url = api_url.rstrip('/')
        self.topic_prefix = topic_prefix
        self.chunk_size = chunk_size
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None
        self._handlers: Dict[int, InboundHandler] = {}
        self._next_handle = 0
        self._subscription: Optional[asyncio.Task] = None
        self._stopped_subscriptions: Set[asyncio.Task] = set()
        self.peer_id: Optional[str] = None

    async def start(self) -> None:
        """Open the HTTP session and learn our own peer id."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
        if self.peer_id is None:
            self.peer_id = await self.node_id()
            logger.info(f"Connected to Kubo node {self.peer_id} at {self.api_url}")

    async def close(self) -> None:
        """Stop the pubsub subscription and release the HTTP session."""
        if self._subscription is not None:
            self._stop_subscription()
        pending = list(self._stopped_subscriptions)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> 'KuboEngine':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def node_id(self) -> str:
        payload = await self._call('id')
        return payload['ID']

    async def add_chunked(self, items: Sequence[AddItem], max_chunk_size: int) -> AsyncIterator[UploadResult]:
        for item in items:
            size = 0

            async def counted(content=item.content) -> AsyncIterator[bytes]:
                nonlocal size
                async for chunk in content:
                    size += len(chunk)
                    yield chunk

            writer = aiohttp.MultipartWriter('form-data')
            part = writer.append(counted(), {'Content-Type': 'application/octet-stream'})
            part.set_content_disposition(
                'form-data', name='file', filename=quote(os.path.basename(item.path) or item.path, safe='')
            )

            record = None
            async for record in self._add(writer, max_chunk_size):
                pass
            if record is None:
                raise EngineError(f"Node returned no record for {item.path}")
            yield UploadResult(path=item.path, content_hash=record['Hash'], size=size)

    def open_add_stream(self) -> KuboAddStream:
        return KuboAddStream(self)

    async def connect_peer(self, address: str) -> None:
        await self._call('swarm/connect', params={'arg': address})

    async def list_peers(self) -> List[PeerRecord]:
        return parse_peers(await self._call('swarm/peers'))

    async def send_peer_message(self, peer_id: str, command: ProtocolCommand) -> None:
        topic = peer_topic(self.topic_prefix, peer_id)
        form = aiohttp.FormData()
        form.add_field('file', command.to_json(), filename='data', content_type='application/octet-stream')
        await self._call('pubsub/pub', params={'arg': encode_multibase(topic)}, data=form)
        logger.debug(f"Published {command.command_name} on {topic}")

    def on_inbound_message(self, handler: InboundHandler) -> int:
        self._next_handle += 1
        handle = self._next_handle
        self._handlers[handle] = handler
        if self._subscription is None or self._subscription.done():
            self._subscription = asyncio.get_running_loop().create_task(self._subscribe_loop())
        return handle

    def remove_inbound_handler(self, handle: int) -> None:
        self._handlers.pop(handle, None)
        if not self._handlers and self._subscription is not None:
            self._stop_subscription()

    def _stop_subscription(self) -> None:
        task = self._subscription
        self._subscription = None
        task.cancel()
        if not task.done():
            self._stopped_subscriptions.add(task)
            task.add_done_callback(self._stopped_subscriptions.discard)

    async def _subscribe_loop(self) -> None:
        while self._handlers:
            try:
                await self.start()
                await self._subscribe(peer_topic(self.topic_prefix, self.peer_id))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Pubsub subscription failed: {e}, retrying in {SUBSCRIBE_RETRY_INTERVAL}s")
            await asyncio.sleep(SUBSCRIBE_RETRY_INTERVAL)

    async def _subscribe(self, topic: str) -> None:
        logger.info(f"Listening for worker messages on {topic}")
        async with self._session.post(
            f"{self.api_url}/api/v0/pubsub/sub",
            params={'arg': encode_multibase(topic)},
            timeout=aiohttp.ClientTimeout(total=None, sock_read=None)
        ) as resp:
            if resp.status != 200:
                raise EngineError(f"pubsub/sub returned {resp.status}: {await resp.text()}")
            async for line in resp.content:
                parsed = parse_pubsub_message(line)
                if parsed is None:
                    continue
                sender, command = parsed
                for handler in list(self._handlers.values()):
                    handler(sender, command)

    async def _add(self, writer: aiohttp.MultipartWriter, chunk_size: int) -> AsyncIterator[Dict[str, Any]]:
        if self._session is None:
            await self.start()
        params = {'chunker': f"size-{chunk_size}", 'pin': 'true'}
        try:
            async with self._session.post(
                f"{self.api_url}/api/v0/add",
                params=params,
                data=writer,
                timeout=aiohttp.ClientTimeout(total=None, sock_read=self.request_timeout)
            ) as resp:
                if resp.status != 200:
                    raise EngineError(f"add returned {resp.status}: {await resp.text()}")
                async for line in resp.content:
                    line = line.strip()
                    if not line:
                        continue
                    record = json.loads(line)
                    if 'Hash' in record:
                        yield record
        except aiohttp.ClientError as e:
            raise EngineError(f"add failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise EngineError("add timed out") from e

    async def _call(self, endpoint: str, params: Optional[Dict[str, str]] = None, data: Any = None) -> Any:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        url = f"{self.api_url}/api/v0/{endpoint}"
        try:
            async with self._session.post(
                url,
                params=params,
                data=data,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            ) as resp:
                body = await resp.text()
                if resp.status != 200:
                    raise EngineError(f"{endpoint} returned {resp.status}: {body}")
                return json.loads(body) if body.strip() else {}
        except aiohttp.ClientError as e:
            raise EngineError(f"{endpoint} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise EngineError(f"{endpoint} timed out after {self.request_timeout}s") from e
