"""Tests for JobEventBus."""

import asyncio

import pytest

from uploader.event_bus import CANCELLED, JobEventBus
from uploader.exceptions import JobCancelledError, RemoteError


class TestEmit:
    """Tests for listener delivery."""

    def test_listeners_called_in_order_with_args(self):
        bus = JobEventBus()
        calls = []
        bus.on('progress', lambda n, p: calls.append(('a', n, p)))
        bus.on('progress', lambda n, p: calls.append(('b', n, p)))

        assert bus.emit('progress', 10, 50)
        assert calls == [('a', 10, 50), ('b', 10, 50)]

    def test_once_listener_fires_once(self):
        bus = JobEventBus()
        calls = []
        bus.once('tick', lambda: calls.append(1))
        bus.emit('tick')
        bus.emit('tick')
        assert calls == [1]
        assert bus.listener_count('tick') == 0

    def test_off_removes_listener(self):
        bus = JobEventBus()
        calls = []
        listener = lambda: calls.append(1)
        bus.on('tick', listener)
        bus.off('tick', listener)
        bus.emit('tick')
        assert calls == []

    def test_failing_listener_does_not_stop_delivery(self):
        bus = JobEventBus()
        calls = []

        def broken():
            raise ValueError("boom")

        bus.on('tick', broken)
        bus.on('tick', lambda: calls.append(1))
        bus.emit('tick')
        assert calls == [1]


class TestTerminalState:
    """Tests for closing behaviour."""

    def test_terminal_event_closes_and_drops_later_events(self):
        bus = JobEventBus(terminal_events=('done', 'error'))
        calls = []
        bus.on('progress', lambda *a: calls.append(a))

        bus.emit('done', [])
        assert bus.closed
        assert bus.terminal == ('done', ([],))
        assert not bus.emit('progress', 1, 1)
        assert not bus.emit('error', Exception())
        assert calls == []

    def test_cancel_is_always_terminal(self):
        bus = JobEventBus()
        assert bus.cancel()
        assert bus.terminal == (CANCELLED, ())

    def test_close_callback_runs_once_and_late_callbacks_run_immediately(self):
        bus = JobEventBus(terminal_events=('done',))
        seen = []
        bus.add_close_callback(lambda event, args: seen.append(event))
        bus.emit('done')
        bus.add_close_callback(lambda event, args: seen.append('late:' + event))
        assert seen == ['done', 'late:done']

    def test_terminal_events_can_be_extended(self):
        bus = JobEventBus(terminal_events=('error',))
        bus.add_terminal_events('transcoding:done')
        bus.emit('done', [])
        assert not bus.closed
        bus.emit('transcoding:done', 'Qm1', {})
        assert bus.closed


class TestAwaiting:
    """Tests for wait() and result()."""

    @pytest.mark.asyncio
    async def test_wait_resolves_on_terminal_event(self):
        bus = JobEventBus(terminal_events=('done',))
        asyncio.get_running_loop().call_soon(bus.emit, 'done', 'Qm1')
        assert await bus.wait(timeout=1) == ('done', ('Qm1',))

    @pytest.mark.asyncio
    async def test_wait_after_close_returns_immediately(self):
        bus = JobEventBus(terminal_events=('done',))
        bus.emit('done', 1)
        assert await bus.wait() == ('done', (1,))

    @pytest.mark.asyncio
    async def test_wait_timeout_leaves_bus_open(self):
        bus = JobEventBus(terminal_events=('done',))
        with pytest.raises(asyncio.TimeoutError):
            await bus.wait(timeout=0.01)
        assert not bus.closed

    @pytest.mark.asyncio
    async def test_result_raises_error_cause(self):
        bus = JobEventBus(terminal_events=('pin:error',))
        cause = RemoteError('pin:error', 'Qm1', 'disk full')
        bus.emit('pin:error', cause)
        with pytest.raises(RemoteError) as exc_info:
            await bus.result()
        assert exc_info.value is cause

    @pytest.mark.asyncio
    async def test_result_raises_on_cancel(self):
        bus = JobEventBus()
        bus.cancel()
        with pytest.raises(JobCancelledError):
            await bus.result()
