"""Error taxonomy for firmware update operations.

Only ``UploadError`` and the pre-flight ``ConfigError``/``FileError`` fail an
operation. ``ListenError`` and ``RestartError`` are reported as warnings.
"""

from typing import Optional


class SWUpdateClientError(Exception):
    """Base class for all update client failures."""


class ConfigError(SWUpdateClientError):
    """Configuration file or transport security settings are invalid."""


class FileError(SWUpdateClientError):
    """Firmware artifact is missing or unreadable."""


class UploadError(SWUpdateClientError):
    """Firmware upload failed (network error, timeout or non-2xx response)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
        timed_out: bool = False
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.timed_out = timed_out


class ListenError(SWUpdateClientError):
    """Progress channel could not be opened or broke mid-stream."""


class RestartError(SWUpdateClientError):
    """Restart request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
