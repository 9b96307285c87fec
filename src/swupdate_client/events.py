"""Progress events from the SWUpdate agent and their classification.

The agent's event vocabulary is open: new agent versions may add event
types. ``classify`` maps the known types onto a fixed set of log categories
and routes everything else through the unknown path, so no event ever makes
classification fail.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventKind(str, Enum):
    """Known progress event types."""

    STATUS = "status"
    STEP = "step"
    MESSAGE = "message"
    INFO = "info"
    SOURCE = "source"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    """Log record severity."""

    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"

    @classmethod
    def from_level(cls, level: Optional[str]) -> "Severity":
        """Map an agent message level onto a severity.

        Accepts names as well as SWUpdate's numeric levels
        (1 = error, 2 = warning, 3 and above = informational).
        """
        normalized = (level or "").strip().upper()

        if normalized in ("ERROR", "1"):
            return cls.ERROR
        if normalized in ("WARN", "WARNING", "2"):
            return cls.WARN
        return cls.INFO


class Category(str, Enum):
    """Log record category (the ``type`` field of JSON output)."""

    STATUS = "status"
    PROGRESS = "progress"
    MESSAGE = "message"
    INFO = "info"
    SOURCE = "source"
    UNKNOWN = "unknown"
    UPLOAD = "upload"
    RESTART = "restart"
    WEBSOCKET = "websocket"
    CONNECTION = "connection"
    COMPLETION = "completion"


class ProgressEvent(BaseModel):
    """One event received on the progress channel.

    ``type`` is kept verbatim; ``kind`` maps it onto ``EventKind``.
    Fields the agent did not send are None.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: Optional[str] = None
    status: Optional[str] = None
    level: Optional[str] = None
    text: Optional[str] = None
    step: Optional[str] = None
    number: Optional[str] = Field(default=None, description="Total number of steps")
    name: Optional[str] = Field(default=None, description="Component being installed")
    percent: Optional[str] = None
    source: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _stringify_scalars(cls, value: Any) -> Any:
        # Agents send some fields as JSON numbers
        if isinstance(value, bool):
            return str(value).lower()
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @property
    def kind(self) -> EventKind:
        try:
            return EventKind(self.type or "")
        except ValueError:
            return EventKind.UNKNOWN

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ProgressEvent":
        """Build an event from a decoded JSON object."""
        return cls.model_validate(payload)


@dataclass(frozen=True)
class LogRecord:
    """A classified, user-facing log entry.

    The timestamp is informational and excluded from equality.
    """

    category: Category
    severity: Severity
    message: str
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
        compare=False
    )

    def to_dict(self) -> Dict[str, str]:
        return {
            "type": self.category.value,
            "level": self.severity.value,
            "message": self.message,
            "time": self.timestamp.isoformat()
        }


_STATUS_MESSAGES = {
    "START": (Severity.INFO, "Update started"),
    "RUN": (Severity.INFO, "Update running"),
    "SUCCESS": (Severity.INFO, "Update completed successfully"),
    "FAILURE": (Severity.ERROR, "Update failed"),
    "DONE": (Severity.INFO, "Update process finished"),
    "IDLE": (Severity.INFO, "System idle"),
}


def _classify_status(event: ProgressEvent, verbose: bool) -> Optional[LogRecord]:
    status = event.status or ""

    if status not in _STATUS_MESSAGES:
        return LogRecord(Category.STATUS, Severity.INFO, f"Status: {status}")

    if status == "IDLE" and not verbose:
        return None

    severity, message = _STATUS_MESSAGES[status]
    return LogRecord(Category.STATUS, severity, message)


def _classify_step(event: ProgressEvent, verbose: bool) -> Optional[LogRecord]:
    if event.percent and event.name:
        return LogRecord(
            Category.PROGRESS,
            Severity.INFO,
            f"Installing {event.name}: {event.percent}%"
        )

    if event.step and event.number:
        return LogRecord(
            Category.PROGRESS,
            Severity.INFO,
            f"Step {event.step} of {event.number}"
        )

    return None


def _classify_message(event: ProgressEvent, verbose: bool) -> Optional[LogRecord]:
    severity = Severity.from_level(event.level)
    text = event.text or ""

    if severity in (Severity.ERROR, Severity.WARN):
        return LogRecord(Category.MESSAGE, severity, text)

    if verbose and text:
        return LogRecord(Category.MESSAGE, Severity.INFO, text)

    return None


def _classify_info(event: ProgressEvent, verbose: bool) -> Optional[LogRecord]:
    if verbose and event.text:
        return LogRecord(Category.INFO, Severity.INFO, event.text)
    return None


def _classify_source(event: ProgressEvent, verbose: bool) -> Optional[LogRecord]:
    if verbose:
        return LogRecord(
            Category.SOURCE,
            Severity.INFO,
            f"Update source: {event.source or ''}"
        )
    return None


def _classify_unknown(event: ProgressEvent, verbose: bool) -> Optional[LogRecord]:
    if verbose:
        return LogRecord(
            Category.UNKNOWN,
            Severity.INFO,
            f"Unknown event type: {event.type or ''}"
        )
    return None


_HANDLERS = {
    EventKind.STATUS: _classify_status,
    EventKind.STEP: _classify_step,
    EventKind.MESSAGE: _classify_message,
    EventKind.INFO: _classify_info,
    EventKind.SOURCE: _classify_source,
    EventKind.UNKNOWN: _classify_unknown,
}


def classify(event: ProgressEvent, verbose: bool) -> Optional[LogRecord]:
    """Turn a progress event into a log record.

    Args:
        event: Event received from the agent
        verbose: Whether low-importance events are reported

    Returns:
        Log record, or None if the event is suppressed
    """
    return _HANDLERS[event.kind](event, verbose)
