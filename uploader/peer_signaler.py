"""Resolves worker addresses to peer ids and locates them among connected peers."""

import asyncio
from typing import Optional

from common.logging_config import get_logger
from common.types import PeerRecord
from uploader.engine import StorageEngine
from uploader.exceptions import ConnectError, PeerNotFoundError, ValidationError

logger = get_logger(__name__)

PEER_ID_PROTOCOLS = ('ipfs', 'p2p')


def resolve_peer_id(address: str) -> str:
    """
    Derive the peer id from a multiaddress, without any network call.

    Uses the value of the last /ipfs/<id> or /p2p/<id> component; addresses
    without one fall back to their last non-empty segment.

    Raises:
        ValidationError: If the address is empty
    """
    segments = [segment for segment in (address or '').strip().split('/') if segment]
    if not segments:
        raise ValidationError(f"Cannot resolve a peer id from address {address!r}")

    for index in range(len(segments) - 2, -1, -1):
        if segments[index] in PEER_ID_PROTOCOLS:
            return segments[index + 1]
    return segments[-1]


class PeerSignaler:
    """
    Connects to a worker and finds its entry in the engine's live peer list.
    """

    def __init__(self, engine: StorageEngine, connect_retries: int = 0, backoff: float = 2.0):
        """
        Args:
            engine: Storage engine handle
            connect_retries: Extra connection attempts after the first failure
            backoff: Base of the exponential delay between attempts, in seconds
        """
        self.engine = engine
        self.connect_retries = connect_retries
        self.backoff = backoff

    @staticmethod
    def resolve_peer_id(address: str) -> str:
        return resolve_peer_id(address)

    async def connect(self, address: str) -> None:
        """
        Open a connection to the worker.

        Raises:
            ConnectError: If every attempt fails
        """
        last_exception: Optional[Exception] = None
        for attempt in range(self.connect_retries + 1):
            try:
                await self.engine.connect_peer(address)
                logger.debug(f"Connected to {address}")
                return
            except Exception as e:
                last_exception = e
                if attempt < self.connect_retries:
                    delay = self.backoff ** attempt
                    logger.warning(
                        f"Connect to {address} failed (attempt {attempt + 1}/{self.connect_retries + 1}): "
                        f"{e}, retrying in {delay}s"
                    )
                    await asyncio.sleep(delay)
        logger.error(f"Cannot connect to {address}: {last_exception}")
        raise ConnectError(f"Cannot connect to {address}: {last_exception}") from last_exception

    async def find_connected_peer(self, peer_id: str) -> Optional[PeerRecord]:
        """
        Return the first connected peer whose id equals peer_id, or None.

        Raises:
            ConnectError: If the peer list can't be queried
        """
        try:
            peers = await self.engine.list_peers()
        except Exception as e:
            raise ConnectError(f"Cannot list peers: {e}") from e

        logger.debug(f"{len(peers)} connected peer(s), looking for {peer_id}")
        for peer in peers:
            if peer.peer_id == peer_id:
                return peer
        return None

    async def locate(self, address: str, peer_id: Optional[str] = None) -> PeerRecord:
        """
        Connect to address and return the worker's peer record.

        Args:
            address: Worker multiaddress
            peer_id: Expected peer id (resolved from address when omitted)

        Raises:
            ConnectError: If the connection or the peer listing fails
            PeerNotFoundError: If the worker is not among the connected peers
        """
        peer_id = peer_id or resolve_peer_id(address)
        await self.connect(address)
        peer = await self.find_connected_peer(peer_id)
        if peer is None:
            raise PeerNotFoundError(f"Worker {peer_id} is not connected (dialed {address})")
        return peer
