"""Update orchestration over two independently failing transports.

The firmware upload (HTTP) decides the outcome. The progress listener
(WebSocket) runs alongside it as a background task and only ever adds
log records. An optional restart request follows a successful upload and
cannot turn a success into a failure.
"""

import asyncio
import logging
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import aiohttp
import httpx

from swupdate_client.config import OperationConfig
from swupdate_client.errors import (
    ConfigError,
    FileError,
    RestartError,
    SWUpdateClientError,
    UploadError,
)
from swupdate_client.events import Category, LogRecord, Severity
from swupdate_client.listener import ProgressListener
from swupdate_client.restart import restart_device
from swupdate_client.sink import LogSink
from swupdate_client.tls import context_for
from swupdate_client.upload import upload_firmware

logger = logging.getLogger(__name__)

# Pause after upload so trailing progress events can arrive
DEFAULT_SETTLE_DELAY = 2.0

# Longest wait for the progress channel before the upload starts anyway
CONNECT_GRACE = 5.0


class UpdateState(str, Enum):
    """Orchestrator lifecycle states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RESTARTING = "restarting"
    DONE = "done"


@dataclass(frozen=True)
class OperationOutcome:
    """Terminal result of one update operation."""

    success: bool
    error: Optional[SWUpdateClientError] = None
    listener_attached: bool = False
    restart_requested: bool = False
    restart_attempted: bool = False
    restart_error: Optional[RestartError] = None
    final_state: UpdateState = UpdateState.DONE

    @property
    def restart_succeeded(self) -> Optional[bool]:
        """Whether the restart worked, or None if none was attempted."""
        if not self.restart_attempted:
            return None
        return self.restart_error is None

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


class UpdateOrchestrator:
    """Runs one firmware update.

    Example:
        >>> orchestrator = UpdateOrchestrator(config, ConsoleSink())
        >>> outcome = await orchestrator.run(restart=True)
        >>> outcome.success
        True
    """

    def __init__(
        self,
        config: OperationConfig,
        sink: LogSink,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        connect_grace: float = CONNECT_GRACE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        ws_session: Optional[aiohttp.ClientSession] = None
    ):
        """Initialize orchestrator.

        Args:
            config: Operation configuration
            sink: Destination for all log records
            settle_delay: Seconds to wait after a successful upload
            connect_grace: Seconds the upload waits for the progress listener
            transport: HTTP transport override for the upload/restart client
            ws_session: Client session for the progress listener
        """
        self.config = config
        self.sink = sink
        self.settle_delay = settle_delay
        self.connect_grace = connect_grace
        self._transport = transport
        self._ws_session = ws_session

        self.state = UpdateState.IDLE
        self._deadline = 0.0

    def _transition(self, state: UpdateState) -> None:
        logger.debug(f"Update state: {self.state.value} -> {state.value}")
        self.state = state

    def _remaining(self) -> float:
        return max(self._deadline - asyncio.get_running_loop().time(), 0.0)

    def _failed(
        self,
        error: SWUpdateClientError,
        restart: bool,
        attached: bool = False
    ) -> OperationOutcome:
        self._transition(UpdateState.FAILED)
        logger.debug(f"Update failed: {error}")
        return OperationOutcome(
            success=False,
            error=error,
            listener_attached=attached,
            restart_requested=restart,
            final_state=UpdateState.FAILED
        )

    async def run(self, restart: bool = False) -> OperationOutcome:
        """Upload the firmware, follow progress and optionally restart.

        Args:
            restart: Request a device restart after a successful upload

        Returns:
            Outcome of the operation. Only pre-flight errors and upload
            errors make it unsuccessful.
        """
        self._deadline = asyncio.get_running_loop().time() + self.config.timeout

        # Pre-flight, no network access yet
        try:
            self.config.check_artifact()
            ssl_context = context_for(self.config.tls)
        except (ConfigError, FileError) as e:
            return self._failed(e, restart)

        self._transition(UpdateState.CONNECTING)

        listener = ProgressListener(
            self.config,
            self.sink,
            ssl_context=ssl_context,
            session=self._ws_session
        )
        listener_task = asyncio.create_task(listener.run(self._remaining()))

        try:
            await self._wait_for_listener(listener, listener_task)

            async with self._http_client(ssl_context) as client:
                self._transition(UpdateState.UPLOADING)

                try:
                    await asyncio.wait_for(
                        upload_firmware(client, self.config, self.sink),
                        timeout=self._remaining()
                    )
                except asyncio.TimeoutError:
                    error = UploadError(
                        f"upload timed out after {self.config.timeout:g}s",
                        timed_out=True
                    )
                    return self._failed(error, restart, listener.attached)
                except (UploadError, FileError) as e:
                    return self._failed(e, restart, listener.attached)

                self._transition(UpdateState.SUCCEEDED)

                # Let trailing progress events drain
                await asyncio.sleep(min(self.settle_delay, self._remaining()))

                restart_error = None
                if restart:
                    restart_error = await self._restart(client)

            self._transition(UpdateState.DONE)

            return OperationOutcome(
                success=True,
                listener_attached=listener.attached,
                restart_requested=restart,
                restart_attempted=restart,
                restart_error=restart_error,
                final_state=UpdateState.DONE
            )

        finally:
            await self._stop_listener(listener_task)

    async def _wait_for_listener(
        self,
        listener: ProgressListener,
        listener_task: asyncio.Task
    ) -> None:
        """Wait until the listener has connected or given up.

        The wait is capped by ``connect_grace``. A handshake still pending
        after that keeps going in the background while the upload runs.
        """
        ready = asyncio.create_task(listener.ready.wait())
        try:
            await asyncio.wait(
                {ready, listener_task},
                timeout=min(self._remaining(), self.connect_grace),
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            ready.cancel()

        if listener.attached:
            logger.debug("Progress listener attached")
        elif not listener.ready.is_set():
            logger.debug(
                f"Progress listener not ready after {self.connect_grace:g}s, "
                "uploading without waiting"
            )

    async def _restart(self, client: httpx.AsyncClient) -> Optional[RestartError]:
        self._transition(UpdateState.RESTARTING)

        try:
            await asyncio.wait_for(
                restart_device(client, self.config, self.sink),
                timeout=self._remaining()
            )
        except asyncio.TimeoutError:
            error = RestartError("restart request timed out")
        except RestartError as e:
            error = e
        else:
            return None

        self.sink.emit(LogRecord(
            Category.RESTART,
            Severity.WARN,
            f"Failed to restart device: {error}"
        ))
        return error

    def _http_client(self, ssl_context: Optional[ssl.SSLContext]) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            verify=ssl_context if ssl_context is not None else True,
            timeout=self.config.timeout,
            transport=self._transport
        )

    async def _stop_listener(self, listener_task: asyncio.Task) -> None:
        listener_task.cancel()

        # Exceptions from the listener never reach the outcome
        results = await asyncio.gather(listener_task, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.debug(f"Progress listener ended with error: {result}")
