"""Restart request issued after a successful upload."""

import logging

import httpx

from swupdate_client.config import OperationConfig
from swupdate_client.errors import RestartError
from swupdate_client.events import Category, LogRecord, Severity
from swupdate_client.sink import LogSink
from swupdate_client.upload import MAX_ERROR_BODY

logger = logging.getLogger(__name__)


async def restart_device(
    client: httpx.AsyncClient,
    config: OperationConfig,
    sink: LogSink
) -> None:
    """Ask the device to restart.

    Raises:
        RestartError: On transport failure or a non-2xx response
    """
    restart_url = f"{config.http_base_url}/restart"
    logger.debug(f"Sending restart request to: {restart_url}")

    try:
        response = await client.post(restart_url)
    except httpx.HTTPError as e:
        raise RestartError(f"failed to restart device: {e}") from e
    except httpx.InvalidURL as e:
        raise RestartError(f"invalid restart URL {restart_url}: {e}") from e

    if not response.is_success:
        raise RestartError(
            f"restart failed with status {response.status_code}: "
            f"{response.text[:MAX_ERROR_BODY]}",
            status_code=response.status_code
        )

    sink.emit(LogRecord(Category.RESTART, Severity.INFO, "Device restart initiated"))
