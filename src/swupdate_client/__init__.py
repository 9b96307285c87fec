"""SWUpdate client.

Delivers firmware images to SWUpdate-enabled devices:
- Uploading the image over HTTP(S)
- Following installation progress over a WebSocket event stream
- Classifying progress events into console or JSON log records
- Optionally restarting the device after a successful upload
"""

from swupdate_client.config import OperationConfig, TLSSettings, VersionInfo
from swupdate_client.errors import (
    ConfigError,
    FileError,
    ListenError,
    RestartError,
    SWUpdateClientError,
    UploadError,
)
from swupdate_client.events import Category, LogRecord, ProgressEvent, Severity, classify
from swupdate_client.orchestrator import OperationOutcome, UpdateOrchestrator, UpdateState
from swupdate_client.sink import ConsoleSink, JSONSink, LogSink, MemorySink, create_sink

__all__ = [
    "OperationConfig",
    "TLSSettings",
    "VersionInfo",
    "ConfigError",
    "FileError",
    "ListenError",
    "RestartError",
    "SWUpdateClientError",
    "UploadError",
    "Category",
    "LogRecord",
    "ProgressEvent",
    "Severity",
    "classify",
    "OperationOutcome",
    "UpdateOrchestrator",
    "UpdateState",
    "ConsoleSink",
    "JSONSink",
    "LogSink",
    "MemorySink",
    "create_sink",
]
