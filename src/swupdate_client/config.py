"""Operation configuration for the update client."""

import ipaddress
import logging
import os
import re
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from swupdate_client.errors import ConfigError, FileError

logger = logging.getLogger(__name__)


class TLSSettings(BaseModel):
    """Transport security settings shared by HTTP and WebSocket."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(
        default=False,
        description="Use HTTPS/WSS instead of HTTP/WS"
    )

    insecure: bool = Field(
        default=False,
        description="Skip server certificate verification"
    )

    ca_cert: Optional[Path] = Field(
        default=None,
        description="PEM bundle of trusted CA certificates"
    )

    client_cert: Optional[Path] = Field(
        default=None,
        description="PEM client certificate"
    )

    client_key: Optional[Path] = Field(
        default=None,
        description="PEM client private key"
    )


class OperationConfig(BaseModel):
    """Configuration for one firmware update operation.

    Immutable once constructed. The artifact is not checked at construction
    time; call ``check_artifact()`` before touching the network.

    Example:
        >>> config = OperationConfig(
        ...     host="192.168.1.100",
        ...     artifact="firmware.swu",
        ...     timeout=120.0
        ... )
        >>> config.ws_url
        'ws://192.168.1.100:8080/ws'
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(
        default="192.168.1.100",
        min_length=1,
        description="Address of the SWUpdate device"
    )

    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port of the SWUpdate web server"
    )

    artifact: Path = Field(
        ...,
        description="Firmware file (.swu) to upload"
    )

    timeout: float = Field(
        default=300.0,  # 5 minutes
        gt=0,
        description="Deadline for the whole operation in seconds"
    )

    verbose: bool = Field(
        default=False,
        description="Report low-importance progress events"
    )

    json_output: bool = Field(
        default=False,
        description="Emit one JSON object per log record"
    )

    tls: TLSSettings = Field(default_factory=TLSSettings)

    @property
    def url_host(self) -> str:
        """Host as written in a URL, with IPv6 literals bracketed."""
        try:
            address = ipaddress.ip_address(self.host)
        except ValueError:
            return self.host

        if address.version == 6:
            return f"[{address}]"
        return self.host

    @property
    def http_base_url(self) -> str:
        scheme = "https" if self.tls.enabled else "http"
        return f"{scheme}://{self.url_host}:{self.port}"

    @property
    def ws_url(self) -> str:
        scheme = "wss" if self.tls.enabled else "ws"
        return f"{scheme}://{self.url_host}:{self.port}/ws"

    def check_artifact(self) -> int:
        """Verify the artifact exists and can be read.

        Returns:
            Artifact size in bytes

        Raises:
            FileError: If the artifact is missing, not a file or unreadable
        """
        if not self.artifact.is_file():
            raise FileError(f"firmware file '{self.artifact}' does not exist")

        try:
            with open(self.artifact, "rb") as f:
                f.read(1)
        except OSError as e:
            raise FileError(f"failed to open file {self.artifact}: {e}") from e

        return self.artifact.stat().st_size


def load_defaults(path: Path) -> Dict[str, Any]:
    """Load option defaults from a YAML file.

    Keys are option names; dashes are accepted and normalised to
    underscores (``ca-cert`` and ``ca_cert`` are equivalent).

    Args:
        path: YAML file path

    Returns:
        Mapping of option name to default value

    Raises:
        ConfigError: If the file cannot be read or is not a mapping
    """
    expanded_path = Path(path).expanduser()

    try:
        with open(expanded_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"failed to read config file {expanded_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {expanded_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"config file {expanded_path} must contain a mapping")

    logger.debug(f"Loaded defaults from {expanded_path}")

    return {str(key).replace("-", "_"): value for key, value in data.items()}


@dataclass(frozen=True)
class VersionInfo:
    """Build information shown by ``--version``."""

    version: str = "dev"
    commit: str = "unknown"
    branch: str = "unknown"
    build_date: str = "unknown"

    @classmethod
    def from_environment(cls) -> "VersionInfo":
        """Build version info from package metadata and build variables.

        Packaging pipelines may set ``SWUPDATE_CLIENT_COMMIT``,
        ``SWUPDATE_CLIENT_BRANCH`` and ``SWUPDATE_CLIENT_BUILD_DATE``.
        """
        try:
            version = metadata.version("swupdate-client")
        except metadata.PackageNotFoundError:
            version = "dev"

        return cls(
            version=version,
            commit=os.environ.get("SWUPDATE_CLIENT_COMMIT", "unknown"),
            branch=os.environ.get("SWUPDATE_CLIENT_BRANCH", "unknown"),
            build_date=os.environ.get("SWUPDATE_CLIENT_BUILD_DATE", "unknown")
        )

    def summary(self) -> str:
        return (
            f"{self.version} (branch: {self.branch}, commit: {self.commit}, "
            f"built: {self.build_date})"
        )


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION = re.compile(r"(?:\d+(?:\.\d+)?(?:ms|h|m|s))+")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str) -> float:
    """Parse a duration such as ``300``, ``90s``, ``5m`` or ``1h30m``.

    A bare number is taken as seconds.

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the value is malformed or not positive
    """
    text = str(value).strip().lower()

    try:
        seconds = float(text)
    except ValueError:
        if not _DURATION.fullmatch(text):
            raise ValueError(f"invalid duration '{value}'") from None
        seconds = sum(
            float(amount) * _UNIT_SECONDS[unit]
            for amount, unit in _DURATION_PART.findall(text)
        )

    if not seconds > 0:
        raise ValueError(f"duration must be positive, got '{value}'")

    return seconds
