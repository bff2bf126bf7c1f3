"""Tests for worker address resolution and peer lookup."""

from unittest.mock import AsyncMock, patch

import pytest

from common.types import PeerRecord
from tests.fakes import WORKER_ADDRESS, WORKER_ID, FakeEngine
from uploader.exceptions import ConnectError, PeerNotFoundError, ValidationError
from uploader.peer_signaler import PeerSignaler, resolve_peer_id


class TestResolvePeerId:
    """Tests for resolve_peer_id."""

    def test_ipfs_component(self):
        assert resolve_peer_id(WORKER_ADDRESS) == WORKER_ID

    def test_p2p_component(self):
        assert resolve_peer_id('/dns4/worker.example/tcp/443/wss/p2p/QmP2p') == 'QmP2p'

    def test_trailing_slash(self):
        assert resolve_peer_id('/ip4/1.2.3.4/tcp/1/ipfs/QmX/') == 'QmX'

    def test_plain_address_falls_back_to_last_segment(self):
        assert resolve_peer_id('/addr') == 'addr'

    def test_empty_address(self):
        with pytest.raises(ValidationError):
            resolve_peer_id('')


class TestPeerSignaler:
    """Tests for PeerSignaler."""

    @pytest.mark.asyncio
    async def test_locate_returns_matching_peer(self, engine):
        peer = await PeerSignaler(engine).locate(WORKER_ADDRESS)
        assert peer == PeerRecord(peer_id=WORKER_ID)
        assert engine.connected == [WORKER_ADDRESS]

    @pytest.mark.asyncio
    async def test_locate_requires_exact_match(self):
        engine = FakeEngine(peers=[PeerRecord(peer_id=WORKER_ID + 'x')])
        with pytest.raises(PeerNotFoundError):
            await PeerSignaler(engine).locate(WORKER_ADDRESS)

    @pytest.mark.asyncio
    async def test_explicit_peer_id_wins(self, engine):
        peer = await PeerSignaler(engine).locate('/ip4/10.0.0.1/tcp/4001', peer_id='QmSomeoneElse')
        assert peer.peer_id == 'QmSomeoneElse'

    @pytest.mark.asyncio
    async def test_connect_failure_raises_connect_error(self, engine):
        engine.unreachable.add(WORKER_ADDRESS)
        with pytest.raises(ConnectError):
            await PeerSignaler(engine).locate(WORKER_ADDRESS)

    @pytest.mark.asyncio
    async def test_connect_retries_with_backoff(self, engine):
        engine.connect_failures = 2
        with patch('uploader.peer_signaler.asyncio.sleep', new=AsyncMock()) as sleep:
            await PeerSignaler(engine, connect_retries=2, backoff=2.0).connect(WORKER_ADDRESS)
        assert len(engine.connected) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_list_failure_raises_connect_error(self, engine):
        engine.list_peers = AsyncMock(side_effect=RuntimeError("api down"))
        with pytest.raises(ConnectError):
            await PeerSignaler(engine).find_connected_peer(WORKER_ID)
