"""CLI for the SWUpdate client.

Uploads a firmware file to an SWUpdate device and follows the installation
progress. Every option can also be set through a ``SWUPDATE_<OPTION>``
environment variable or a YAML file passed with ``--config``.
"""

import asyncio
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from swupdate_client.config import (
    OperationConfig,
    TLSSettings,
    VersionInfo,
    load_defaults,
    parse_duration,
)
from swupdate_client.errors import ConfigError
from swupdate_client.events import Category, LogRecord, Severity
from swupdate_client.orchestrator import UpdateOrchestrator
from swupdate_client.sink import create_sink

logger = logging.getLogger(__name__)

ENVVAR_PREFIX = "SWUPDATE"

EXAMPLES = """\b
Examples:
  swupdate-client --ip 192.168.1.100 --file firmware.swu --restart
  swupdate-client --ip 192.168.1.100 --file firmware.swu --json > update.log
  swupdate-client --ip 192.168.1.100 --file firmware.swu --tls --ca-cert ca.crt
  swupdate-client --ip 192.168.1.100 --file firmware.swu --tls --insecure
"""


class Duration(click.ParamType):
    """Click parameter type for durations such as ``90s`` or ``5m``."""

    name = "duration"

    def convert(self, value, param, ctx):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)

        try:
            return parse_duration(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


def _apply_config_file(ctx, param, value):
    """Use the YAML file's entries as option defaults."""
    if value is None:
        return value

    try:
        defaults = load_defaults(value)
    except ConfigError as e:
        raise click.BadParameter(str(e), ctx=ctx, param=param)

    # Flag names that differ from their parameter names
    for flag, name in (("json", "json_output"), ("file", "firmware_file")):
        if flag in defaults:
            defaults[name] = defaults.pop(flag)

    ctx.default_map = {**(ctx.default_map or {}), **defaults}
    return value


def configure_logging(verbose: bool) -> None:
    """Configure diagnostic logging on stderr."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logging.getLogger("swupdate_client").setLevel(
        logging.DEBUG if verbose else logging.WARNING
    )


def print_version(info: VersionInfo) -> None:
    click.echo(f"swupdate-client version {info.version}")
    click.echo(f"  Branch: {info.branch}")
    click.echo(f"  Commit: {info.commit}")
    click.echo(f"  Built:  {info.build_date}")


@click.command(
    context_settings={"help_option_names": ["-h", "--help"]},
    epilog=EXAMPLES
)
@click.option(
    "--config",
    type=click.Path(dir_okay=False, path_type=Path),
    is_eager=True,
    expose_value=False,
    callback=_apply_config_file,
    help="YAML file with option defaults"
)
@click.option("--ip", default="192.168.1.100", show_default=True,
              help="IP address of the swupdate device")
@click.option("--port", type=click.IntRange(1, 65535), default=8080, show_default=True,
              help="Port of the swupdate web server")
@click.option("--file", "firmware_file", type=click.Path(dir_okay=False, path_type=Path),
              envvar=f"{ENVVAR_PREFIX}_FILE",
              help="Firmware file (.swu) to upload")
@click.option("--timeout", type=Duration(), default="5m", show_default=True,
              help="Timeout for the whole operation (e.g. 90s, 5m, 1h)")
@click.option("--verbose", is_flag=True, help="Enable verbose output")
@click.option("--json", "json_output", is_flag=True, envvar=f"{ENVVAR_PREFIX}_JSON",
              help="Output progress and messages in JSON format")
@click.option("--tls", is_flag=True, help="Use HTTPS/WSS instead of HTTP/WS")
@click.option("--insecure", is_flag=True, help="Skip TLS certificate verification")
@click.option("--ca-cert", type=click.Path(dir_okay=False, path_type=Path),
              help="Path to custom CA certificate file")
@click.option("--client-cert", type=click.Path(dir_okay=False, path_type=Path),
              help="Path to client certificate file")
@click.option("--client-key", type=click.Path(dir_okay=False, path_type=Path),
              help="Path to client private key file")
@click.option("--restart", is_flag=True, help="Restart device after successful update")
@click.option("--version", "show_version", is_flag=True, help="Show version information")
def cli(
    ip,
    port,
    firmware_file,
    timeout,
    verbose,
    json_output,
    tls,
    insecure,
    ca_cert,
    client_cert,
    client_key,
    restart,
    show_version
):
    """SWUpdate Client - Upload firmware to swupdate-capable devices."""
    version_info = VersionInfo.from_environment()

    if show_version:
        print_version(version_info)
        sys.exit(0)

    if firmware_file is None:
        raise click.UsageError("firmware file (--file) is required")

    configure_logging(verbose)
    logger.debug(f"swupdate-client {version_info.summary()}")

    if not firmware_file.exists():
        click.echo(f"Error: firmware file '{firmware_file}' does not exist", err=True)
        sys.exit(1)

    try:
        config = OperationConfig(
            host=ip,
            port=port,
            artifact=firmware_file,
            timeout=timeout,
            verbose=verbose,
            json_output=json_output,
            tls=TLSSettings(
                enabled=tls,
                insecure=insecure,
                ca_cert=ca_cert,
                client_cert=client_cert,
                client_key=client_key
            )
        )
    except ValidationError as e:
        click.echo(f"Error: invalid configuration: {e}", err=True)
        sys.exit(1)

    sink = create_sink(json_output=json_output, verbose=verbose)

    sink.emit(LogRecord(
        Category.CONNECTION,
        Severity.INFO,
        f"Connecting to swupdate device at {config.host}:{config.port}"
    ))

    orchestrator = UpdateOrchestrator(config, sink)
    outcome = asyncio.run(orchestrator.run(restart=restart))

    if not outcome.success:
        click.echo(f"Update failed: {outcome.error}", err=True)
        sys.exit(outcome.exit_code)

    sink.emit(LogRecord(Category.COMPLETION, Severity.INFO, "Update process completed"))
    sys.exit(outcome.exit_code)


def main():
    cli(auto_envvar_prefix=ENVVAR_PREFIX)


if __name__ == "__main__":
    main()
