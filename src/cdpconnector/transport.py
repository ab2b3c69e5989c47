"""Transport adapters for ChromeConnector.

The connector only needs a small, event-shaped surface from its transport:

- ``open()`` starts connecting; the transport then emits ``open`` or ``error``
- ``message(payload)`` for every inbound text frame
- ``close(code)`` when the channel goes away after it was opened
- ``error(exc)`` for connection failures and socket errors
- ``send(payload)`` and ``close()``

``WebSocketTransport`` implements this on top of aiohttp.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Protocol

import aiohttp

from cdpconnector.config import TransportConfig
from cdpconnector.events import EventEmitter, Listener

if TYPE_CHECKING:
    from aiohttp import ClientWebSocketResponse

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Interface the connector expects from a transport."""

    def on(self, channel: str, listener: Listener) -> Listener:
        """Register a listener for open/message/close/error."""
        ...

    def remove_all_listeners(self, channel: str | None = None) -> None:
        """Detach listeners so later notifications are not observed."""
        ...

    def open(self) -> None:
        """Start connecting. Must not block."""
        ...

    async def send(self, message: str) -> None:
        """Send one text message. Raises ConnectionError when not open."""
        ...

    async def close(self) -> None:
        """Close the channel."""
        ...


TransportFactory = Callable[[str], Transport]


class WebSocketTransport(EventEmitter):
    """aiohttp WebSocket client transport.

    A background task owns the socket: it connects, emits ``open``, then
    forwards every frame as a ``message`` until the socket closes, at which
    point it emits ``close`` with the WebSocket close code.
    """

    def __init__(self, url: str, config: TransportConfig | None = None) -> None:
        """Initialize the transport.

        Args:
            url: WebSocket debugger URL (e.g. "ws://localhost:9222/devtools/page/<id>")
            config: Optional socket options
        """
        super().__init__()
        self.url = url
        self._config = config or TransportConfig()
        self._session: aiohttp.ClientSession | None = None
        self._ws: ClientWebSocketResponse | None = None
        self._reader_task: asyncio.Task[None] | None = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    @property
    def close_code(self) -> int | None:
        return self._ws.close_code if self._ws is not None else None

    def open(self) -> None:
        """Connect in the background."""
        if self._reader_task is not None:
            raise RuntimeError("Transport already opened")
        self._reader_task = asyncio.create_task(self._run())

    async def send(self, message: str) -> None:
        """Send a message to the target."""
        if not self.is_open:
            raise ConnectionError("WebSocket is not open")
        await self._ws.send_str(message)

    async def close(self) -> None:
        """Close the socket and wait for the reader to finish."""
        task = self._reader_task
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        elif task is not None and not task.done():
            # Still connecting
            task.cancel()

        if task is not None and task is not asyncio.current_task():
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._close_session()

    # -------------------------------------------------------------------------
    # Background reader
    # -------------------------------------------------------------------------

    async def _run(self) -> None:
        try:
            self._session = aiohttp.ClientSession()
            self._ws = await self._session.ws_connect(
                self.url,
                heartbeat=self._config.heartbeat,
                max_msg_size=self._config.max_message_size,
            )
        except asyncio.CancelledError:
            await self._close_session()
            raise
        except Exception as e:
            logger.debug("WebSocket connect to %s failed: %s", self.url, e)
            await self._close_session()
            self.emit("error", e)
            return

        logger.debug("WebSocket connected to %s", self.url)
        self.emit("open")

        try:
            await self._read_loop(self._ws)
        except Exception as e:
            logger.warning("WebSocket read from %s failed: %s", self.url, e)
            self.emit("error", e)
        finally:
            await self._close_session()
            logger.debug("WebSocket to %s closed with code %s", self.url, self.close_code)
            self.emit("close", self.close_code)

    async def _read_loop(self, ws: ClientWebSocketResponse) -> None:
        # Iteration stops on CLOSE, CLOSING and CLOSED frames
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                self.emit("message", msg.data)
            elif msg.type == aiohttp.WSMsgType.BINARY:
                # Invalid UTF-8 reaches the parser as replacement characters
                self.emit("message", msg.data.decode("utf-8", errors="replace"))
            elif msg.type == aiohttp.WSMsgType.ERROR:
                self.emit("error", ws.exception())
                break
            else:
                logger.debug("Ignoring WebSocket frame of type %s", msg.type)

    async def _close_session(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._session is not None:
            session, self._session = self._session, None
            await session.close()
