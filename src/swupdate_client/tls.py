"""TLS context construction for HTTPS and WSS connections."""

import logging
import ssl
from pathlib import Path
from typing import Optional, Union

from swupdate_client.config import TLSSettings
from swupdate_client.errors import ConfigError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def build_ssl_context(
    skip_verify: bool,
    ca_cert: Optional[PathLike] = None,
    client_cert: Optional[PathLike] = None,
    client_key: Optional[PathLike] = None
) -> ssl.SSLContext:
    """Build a client TLS context.

    Args:
        skip_verify: Disable server certificate and hostname verification
        ca_cert: PEM bundle to trust instead of the system roots
        client_cert: PEM client certificate
        client_key: PEM private key matching ``client_cert``

    Returns:
        Configured SSL context

    Raises:
        ConfigError: If a file cannot be loaded, or only one half of the
            client identity is given
    """
    if (client_cert is None) != (client_key is None):
        raise ConfigError(
            "client certificate and client key must be supplied together"
        )

    try:
        context = ssl.create_default_context(
            cafile=str(ca_cert) if ca_cert is not None else None
        )
    except (OSError, ssl.SSLError) as e:
        raise ConfigError(f"failed to load CA certificate {ca_cert}: {e}") from e

    if client_cert is not None:
        try:
            context.load_cert_chain(str(client_cert), str(client_key))
        except (OSError, ssl.SSLError) as e:
            raise ConfigError(f"failed to load client certificate: {e}") from e
        logger.debug(f"Loaded client certificate {client_cert}")

    if skip_verify:
        # check_hostname must be cleared before verify_mode can be relaxed
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        logger.debug("TLS certificate verification disabled")

    return context


def context_for(settings: TLSSettings) -> Optional[ssl.SSLContext]:
    """Return the TLS context for ``settings``, or None when TLS is off."""
    if not settings.enabled:
        return None

    return build_ssl_context(
        settings.insecure,
        ca_cert=settings.ca_cert,
        client_cert=settings.client_cert,
        client_key=settings.client_key
    )
