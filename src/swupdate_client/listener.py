"""Progress listener for the SWUpdate WebSocket event stream.

Progress monitoring is advisory: nothing that happens on the event channel
changes whether an update is considered successful. Connection failures are
reported as warnings, and a broken stream simply ends the listener.
"""

import asyncio
import json
import logging
import ssl
from typing import Optional

import aiohttp
from pydantic import ValidationError

from swupdate_client.config import OperationConfig
from swupdate_client.errors import ListenError
from swupdate_client.events import Category, LogRecord, ProgressEvent, Severity, classify
from swupdate_client.sink import LogSink

logger = logging.getLogger(__name__)

# Seconds allowed for the closing handshake
CLOSE_TIMEOUT = 1.0


class ProgressListener:
    """Receives progress events and forwards classified records to a sink.

    The listener owns its WebSocket. Other components only observe
    ``ready`` (set once the connection attempt has finished, whatever the
    result) and ``attached``.

    Example:
        >>> listener = ProgressListener(config, sink)
        >>> task = asyncio.create_task(listener.run(handshake_timeout=30.0))
        >>> await listener.ready.wait()
        >>> # ... upload ...
        >>> task.cancel()
    """

    def __init__(
        self,
        config: OperationConfig,
        sink: LogSink,
        ssl_context: Optional[ssl.SSLContext] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """Initialize progress listener.

        Args:
            config: Operation configuration
            sink: Destination for classified records
            ssl_context: TLS context for wss:// connections
            session: Client session to use instead of a private one
        """
        self.config = config
        self.sink = sink
        self.ssl_context = ssl_context
        self._session = session

        self.ready = asyncio.Event()
        self.attached = False
        self.events_received = 0

    async def run(self, handshake_timeout: float) -> None:
        """Connect and process events until the stream ends or the task is cancelled."""
        session = self._session or aiohttp.ClientSession()
        owns_session = self._session is None
        ws: Optional[aiohttp.ClientWebSocketResponse] = None

        try:
            try:
                ws = await self._connect(session, handshake_timeout)
            except ListenError as e:
                self.sink.emit(LogRecord(
                    Category.WEBSOCKET,
                    Severity.WARN,
                    f"Failed to connect to WebSocket: {e}"
                ))
                self.sink.emit(LogRecord(
                    Category.WEBSOCKET,
                    Severity.WARN,
                    "Proceeding without progress monitoring"
                ))
                return
            finally:
                self.ready.set()

            self.attached = True
            await self._receive(ws)

        finally:
            if ws is not None:
                await self._close(ws)
            if owns_session:
                await session.close()

    async def _connect(
        self,
        session: aiohttp.ClientSession,
        handshake_timeout: float
    ) -> aiohttp.ClientWebSocketResponse:
        url = self.config.ws_url
        logger.debug(f"Connecting to WebSocket: {url}")

        try:
            ws = await asyncio.wait_for(
                session.ws_connect(
                    url,
                    ssl=self.ssl_context if self.ssl_context is not None else True
                ),
                timeout=handshake_timeout
            )
        except asyncio.TimeoutError as e:
            raise ListenError(f"handshake with {url} timed out") from e
        except Exception as e:
            # Any connect failure, including a URL aiohttp cannot parse
            raise ListenError(str(e) or e.__class__.__name__) from e

        logger.debug(f"Connected to WebSocket: {url}")
        return ws

    async def _receive(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        async for msg in ws:
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                try:
                    event = ProgressEvent.from_payload(json.loads(msg.data))
                except (ValueError, ValidationError) as e:
                    logger.debug(f"Stopping listener, undecodable event: {e}")
                    return

            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.debug(f"WebSocket error: {ws.exception()}")
                return

            else:
                continue

            self.events_received += 1

            record = classify(event, self.config.verbose)
            if record is not None:
                self.sink.emit(record)

        logger.debug(f"WebSocket closed (code: {ws.close_code})")

    async def _close(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            await asyncio.wait_for(ws.close(), timeout=CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            logger.debug("WebSocket close handshake timed out")
