"""Per-job event emitter with an explicit terminal state."""

import asyncio
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from common.logging_config import get_logger
from uploader.exceptions import JobCancelledError

logger = get_logger(__name__)

CANCELLED = "cancelled"

Listener = Callable[..., None]


class JobEventBus:
    """
    Multi-listener event emitter for one job.

    Listeners are called synchronously, in registration order, for every event
    emitted after they were attached; there is no replay. Emitting one of the
    bus's terminal events closes it: later emits are dropped, and ``wait``
    returns the terminal event even to callers that arrive late.
    """

    def __init__(self, name: str = "job", terminal_events: Iterable[str] = ()):
        self.name = name
        self._listeners: Dict[str, List[Tuple[Listener, bool]]] = {}
        self._terminal_events = set(terminal_events) | {CANCELLED}
        self._terminal: Optional[Tuple[str, tuple]] = None
        self._waiters: List[asyncio.Future] = []
        self._close_callbacks: List[Callable[[str, tuple], None]] = []
        self.task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self._terminal is not None

    @property
    def terminal(self) -> Optional[Tuple[str, tuple]]:
        return self._terminal

    @property
    def terminal_events(self) -> frozenset:
        return frozenset(self._terminal_events)

    def add_terminal_events(self, *events: str) -> None:
        self._terminal_events.update(events)

    def discard_terminal_events(self, *events: str) -> None:
        self._terminal_events.difference_update(events)

    def on(self, event: str, listener: Listener) -> 'JobEventBus':
        self._listeners.setdefault(event, []).append((listener, False))
        return self

    def once(self, event: str, listener: Listener) -> 'JobEventBus':
        self._listeners.setdefault(event, []).append((listener, True))
        return self

    def off(self, event: str, listener: Listener) -> 'JobEventBus':
        entries = self._listeners.get(event, [])
        for index, (registered, _) in enumerate(entries):
            if registered is listener:
                del entries[index]
                break
        return self

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def add_close_callback(self, callback: Callable[[str, tuple], None]) -> None:
        """Run callback(event, args) once when the bus closes (immediately if closed)."""
        if self._terminal is not None:
            callback(*self._terminal)
            return
        self._close_callbacks.append(callback)

    def emit(self, event: str, *args: Any) -> bool:
        """
        Deliver an event to its listeners.

        Returns:
            True if the event was delivered, False if the bus was already closed
        """
        if self._terminal is not None:
            logger.debug(f"[{self.name}] dropping '{event}' emitted after '{self._terminal[0]}'")
            return False

        entries = self._listeners.get(event, [])
        if entries:
            self._listeners[event] = [entry for entry in entries if not entry[1]]
        for listener, _ in list(entries):
            try:
                listener(*args)
            except Exception as e:
                logger.error(f"[{self.name}] listener for '{event}' failed: {e}", exc_info=True)

        if event in self._terminal_events:
            self._close(event, args)
        return True

    def cancel(self) -> bool:
        """Close the job with the 'cancelled' terminal event."""
        return self.emit(CANCELLED)

    def _close(self, event: str, args: tuple) -> None:
        self._terminal = (event, args)
        logger.debug(f"[{self.name}] closed by '{event}'")

        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(self._terminal)
        self._waiters.clear()

        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            try:
                callback(event, args)
            except Exception as e:
                logger.error(f"[{self.name}] close callback failed: {e}", exc_info=True)

    async def wait(self, timeout: Optional[float] = None) -> Tuple[str, tuple]:
        """
        Wait for the terminal event.

        Returns:
            (event name, event args)

        Raises:
            asyncio.TimeoutError: If timeout elapses first (the bus stays open)
        """
        if self._terminal is not None:
            return self._terminal
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(asyncio.shield(waiter), timeout)
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    async def result(self, timeout: Optional[float] = None) -> tuple:
        """
        Wait for the terminal event and return its args, raising on failure.

        An ``error``-suffixed terminal event whose first argument is an exception
        re-raises that exception; ``cancelled`` raises JobCancelledError.
        """
        event, args = await self.wait(timeout)
        if event == CANCELLED:
            raise JobCancelledError(f"{self.name} was cancelled")
        if event.endswith('error'):
            cause = args[0] if args else None
            if isinstance(cause, BaseException):
                raise cause
            raise RuntimeError(f"{self.name} failed: {cause}")
        return args

    def __repr__(self) -> str:
        state = f"closed by {self._terminal[0]!r}" if self._terminal else "open"
        return f"JobEventBus(name={self.name!r}, {state})"
