"""Channel-keyed observer registry.

``EventEmitter`` delivers each ``emit`` synchronously to the listeners of one
channel, in the order they were registered. Both the connector (``connect``,
``event.Page``, ``Page.loadEventFired`` ...) and the WebSocket transport
(``open``, ``message``, ``close``, ``error``) are built on it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class _Once:
    """Wrapper that removes itself from the emitter after the first call."""
    __slots__ = ('emitter', 'channel', 'listener')

    def __init__(self, emitter: EventEmitter, channel: str, listener: Listener) -> None:
        self.emitter = emitter
        self.channel = channel
        self.listener = listener

    def __call__(self, *args: Any) -> Any:
        self.emitter.off(self.channel, self)
        return self.listener(*args)


class EventEmitter:
    """Observer registry keyed by channel name.

    Listeners may be plain callables or coroutine functions. Coroutines are
    scheduled as tasks on the running loop; the emitter keeps a reference
    until they finish.

    A listener that raises is logged and skipped, later listeners still run.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._listener_tasks: set[asyncio.Task[Any]] = set()

    def on(self, channel: str, listener: Listener) -> Listener:
        """Register ``listener`` on ``channel``. Returns the listener."""
        self._listeners.setdefault(channel, []).append(listener)
        return listener

    add_listener = on

    def once(self, channel: str, listener: Listener) -> Listener:
        """Register ``listener`` for the next emission on ``channel`` only."""
        self.on(channel, _Once(self, channel, listener))
        return listener

    def off(self, channel: str, listener: Listener) -> None:
        """Remove the first registration of ``listener`` on ``channel``.

        Listeners registered with ``once`` can be removed by passing the
        original callable.
        """
        listeners = self._listeners.get(channel)
        if not listeners:
            return
        for i, registered in enumerate(listeners):
            if registered is listener or (
                isinstance(registered, _Once) and registered.listener is listener
            ):
                del listeners[i]
                break
        if not listeners:
            del self._listeners[channel]

    remove_listener = off

    def remove_all_listeners(self, channel: str | None = None) -> None:
        """Drop every listener, or every listener of one channel."""
        if channel is None:
            self._listeners.clear()
        else:
            self._listeners.pop(channel, None)

    def listener_count(self, channel: str) -> int:
        return len(self._listeners.get(channel, ()))

    def channels(self) -> list[str]:
        return list(self._listeners)

    def emit(self, channel: str, *args: Any) -> bool:
        """Call every listener of ``channel`` with ``args``.

        Returns:
            True if the channel had listeners
        """
        listeners = self._listeners.get(channel)
        if not listeners:
            return False

        # Snapshot so listeners can (un)register during delivery
        for listener in list(listeners):
            try:
                result = listener(*args)
            except Exception:
                logger.exception("Listener for %r failed", channel)
                continue
            if inspect.isawaitable(result):
                self._track(channel, result)
        return True

    async def wait_for(self, channel: str, timeout: float | None = None) -> tuple[Any, ...]:
        """Wait for the next emission on ``channel``.

        Returns:
            The emitted arguments as a tuple

        Raises:
            asyncio.TimeoutError: if nothing is emitted within ``timeout`` seconds
        """
        future: asyncio.Future[tuple[Any, ...]] = asyncio.get_running_loop().create_future()

        def resolve(*args: Any) -> None:
            if not future.done():
                future.set_result(args)

        self.once(channel, resolve)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            self.off(channel, resolve)

    def _track(self, channel: str, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._listener_tasks.add(task)

        def done(t: asyncio.Task[Any]) -> None:
            self._listener_tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "Async listener for %r failed", channel, exc_info=t.exception()
                )

        task.add_done_callback(done)
