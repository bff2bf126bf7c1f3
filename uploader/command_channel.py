"""
Command dispatch to worker peers and demultiplexing of their replies.

Outbound commands are fire-and-forget. Inbound messages arrive on a single
shared engine subscription and are routed through the JobRegistry by the
content hash embedded in their args, so concurrent jobs never see each
other's events.
"""

import asyncio
import json
from typing import Any, Callable, Dict, Optional, Tuple

from common.logging_config import get_logger
from common.protocol import (
    GET_METADATA_DONE,
    GET_METADATA_ERROR,
    PIN_DONE,
    PIN_ERROR,
    PIN_PROGRESS,
    TRANSCODING_DONE,
    TRANSCODING_DOWNSAMPLE_READY,
    TRANSCODING_ERROR,
    TRANSCODING_PROGRESS,
    TRANSCODING_STARTED,
    UPLOADER_PROGRESS,
    InboundEvent,
    ProtocolCommand,
    parse_inbound,
)
from uploader.engine import StorageEngine
from uploader.exceptions import ParseError, RemoteError, SendError
from uploader.job_registry import KIND_METADATA, KIND_PIN, KIND_TRANSCODE, JobRegistry

logger = get_logger(__name__)


def _remote_error(event: InboundEvent) -> Tuple[Any, ...]:
    return (RemoteError(event.command_name, event.content_hash, event.args.get('err')),)


def _transcoding_result(event: InboundEvent) -> Tuple[Any, ...]:
    result = event.args.get('result')
    if isinstance(result, (str, bytes, bytearray)):
        try:
            result = json.loads(result)
        except json.JSONDecodeError as e:
            raise ParseError(f"Couldn't parse transcoding result for {event.content_hash}: {result!r}") from e
    return (event.content_hash, result)


def _fields(*names: str) -> Callable[[InboundEvent], Tuple[Any, ...]]:
    def extract(event: InboundEvent) -> Tuple[Any, ...]:
        return tuple(event.args.get(name) for name in names)
    return extract


# command -> (job kind, args extractor); the bus event name is the command name.
DISPATCH_TABLE: Dict[str, Tuple[str, Callable[[InboundEvent], Tuple[Any, ...]]]] = {
    TRANSCODING_ERROR: (KIND_TRANSCODE, _remote_error),
    TRANSCODING_STARTED: (KIND_TRANSCODE, _fields('hash', 'author')),
    TRANSCODING_PROGRESS: (KIND_TRANSCODE, _fields('hash', 'size', 'percent')),
    UPLOADER_PROGRESS: (KIND_TRANSCODE, _fields('hash', 'chunkSize', 'percent')),
    TRANSCODING_DOWNSAMPLE_READY: (KIND_TRANSCODE, _fields('hash', 'size')),
    TRANSCODING_DONE: (KIND_TRANSCODE, _transcoding_result),
    PIN_ERROR: (KIND_PIN, _remote_error),
    PIN_PROGRESS: (KIND_PIN, _fields('hash', 'chunkSize', 'percent')),
    PIN_DONE: (KIND_PIN, _fields('hash')),
    GET_METADATA_ERROR: (KIND_METADATA, _remote_error),
    GET_METADATA_DONE: (KIND_METADATA, _fields('hash', 'data')),
}


class CommandChannel:
    """
    Sends named commands to peers and routes their replies to registered jobs.
    """

    def __init__(
        self,
        engine: StorageEngine,
        registry: JobRegistry,
        send_retries: int = 0,
        backoff: float = 2.0
    ):
        self.engine = engine
        self.registry = registry
        self.send_retries = send_retries
        self.backoff = backoff
        self._subscription: Optional[Any] = None

    @property
    def listening(self) -> bool:
        return self._subscription is not None

    def start(self) -> None:
        """Subscribe to inbound peer messages (idempotent)."""
        if self._subscription is None:
            self._subscription = self.engine.on_inbound_message(self.on_inbound)
            logger.info("Listening for worker messages")

    def stop(self) -> None:
        if self._subscription is not None:
            self.engine.remove_inbound_handler(self._subscription)
            self._subscription = None
            logger.info("Stopped listening for worker messages")

    async def send(self, peer_id: str, command_name: str, args: Dict[str, Any]) -> None:
        """
        Serialize args and transmit the command to exactly one peer.

        Success only means the local send did not fail; no reply is awaited.

        Raises:
            SendError: If args aren't serializable or every attempt fails
        """
        try:
            command = ProtocolCommand.create(command_name, args)
        except (TypeError, ValueError) as e:
            raise SendError(f"Cannot serialize args for '{command_name}': {e}") from e

        last_exception: Optional[Exception] = None
        for attempt in range(self.send_retries + 1):
            try:
                await self.engine.send_peer_message(peer_id, command)
                logger.info(f"Sent '{command_name}' to {peer_id} for {args.get('hash')}")
                return
            except Exception as e:
                last_exception = e
                if attempt < self.send_retries:
                    delay = self.backoff ** attempt
                    logger.warning(
                        f"Sending '{command_name}' to {peer_id} failed "
                        f"(attempt {attempt + 1}/{self.send_retries + 1}): {e}, retrying in {delay}s"
                    )
                    await asyncio.sleep(delay)
        raise SendError(f"Cannot send '{command_name}' to {peer_id}: {last_exception}") from last_exception

    def on_inbound(self, peer_id: str, raw_command: Any) -> None:
        """
        Route one raw inbound message. Never raises.
        """
        try:
            event = parse_inbound(peer_id, raw_command)
        except ParseError as e:
            logger.error(f"Dropping message from {peer_id}: {e}")
            return

        logger.debug(f"Got command '{event.command_name}' from {peer_id} args: {event.args}")

        route = DISPATCH_TABLE.get(event.command_name)
        if route is None:
            logger.info(f"Unknown command: {event.command_name}")
            return

        kind, extract = route
        content_hash = event.content_hash
        if content_hash is None:
            logger.warning(f"Dropping '{event.command_name}' from {peer_id}: no hash in args")
            return

        jobs = self.registry.lookup(kind, content_hash)
        if not jobs:
            logger.debug(f"No {kind} job waiting for {content_hash}, ignoring '{event.command_name}'")
            return

        try:
            args = extract(event)
        except ParseError as e:
            logger.error(f"Dropping '{event.command_name}' from {peer_id}: {e}")
            return

        for job in jobs:
            job.bus.emit(event.command_name, *args)
