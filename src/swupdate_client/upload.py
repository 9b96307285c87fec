"""Firmware upload to the SWUpdate web server."""

import logging

import httpx

from swupdate_client.config import OperationConfig
from swupdate_client.errors import FileError, UploadError
from swupdate_client.events import Category, LogRecord, Severity
from swupdate_client.sink import LogSink

logger = logging.getLogger(__name__)

# Longest response body kept on an UploadError
MAX_ERROR_BODY = 1024


def format_size(size_bytes: int) -> str:
    """Format a byte count the way upload messages report it."""
    return f"{size_bytes / (1024 * 1024):.2f} MB"


async def upload_firmware(
    client: httpx.AsyncClient,
    config: OperationConfig,
    sink: LogSink
) -> None:
    """Upload the firmware artifact as a multipart form.

    The artifact is streamed from disk as the single form field ``file``.

    Args:
        client: HTTP client configured with the operation's TLS settings
        config: Operation configuration
        sink: Destination for upload log records

    Raises:
        FileError: If the artifact cannot be opened
        UploadError: On transport failure, timeout or a non-2xx response
    """
    try:
        firmware = open(config.artifact, "rb")
    except OSError as e:
        raise FileError(f"failed to open file {config.artifact}: {e}") from e

    with firmware:
        try:
            size = config.artifact.stat().st_size
        except OSError as e:
            raise FileError(f"failed to get file stats: {e}") from e

        sink.emit(LogRecord(
            Category.UPLOAD,
            Severity.INFO,
            f"Uploading firmware: {config.artifact.name} ({format_size(size)})"
        ))

        upload_url = f"{config.http_base_url}/upload"
        logger.debug(f"Uploading to: {upload_url}")

        try:
            response = await client.post(
                upload_url,
                files={
                    "file": (config.artifact.name, firmware, "application/octet-stream")
                }
            )
        except httpx.TimeoutException as e:
            raise UploadError(
                f"failed to upload firmware: timed out ({e})",
                timed_out=True
            ) from e
        except httpx.HTTPError as e:
            raise UploadError(f"failed to upload firmware: {e}") from e
        except httpx.InvalidURL as e:
            raise UploadError(f"invalid upload URL {upload_url}: {e}") from e

    if not response.is_success:
        body = response.text[:MAX_ERROR_BODY]
        raise UploadError(
            f"upload failed with status {response.status_code}: {body}",
            status_code=response.status_code,
            body=body
        )

    logger.debug(f"Upload accepted with status {response.status_code}")

    sink.emit(LogRecord(
        Category.UPLOAD,
        Severity.INFO,
        "Firmware uploaded successfully"
    ))
