"""Pytest configuration and shared fixtures."""

import asyncio
import ipaddress
import socket
import ssl
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, List, NamedTuple, Optional, Tuple

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from swupdate_client.config import OperationConfig, TLSSettings
from swupdate_client.sink import MemorySink


class FakeDevice:
    """Minimal SWUpdate web server.

    Serves ``POST /upload``, ``POST /restart`` and the ``/ws`` progress
    stream. Progress events queued in ``progress_events`` are pushed to the
    connected WebSocket while an upload is being handled.
    """

    def __init__(self):
        self.upload_status = 200
        self.upload_body = "OK"
        self.upload_delay = 0.0
        self.restart_status = 200
        self.ws_enabled = True
        self.ws_stall = False
        self.ws_release = asyncio.Event()
        self.progress_events: List[Any] = []

        self.uploads: List[Tuple[str, Optional[str], bytes]] = []
        self.restart_calls = 0
        self.ws_connected = asyncio.Event()
        self.ws_closed = asyncio.Event()
        self.port: Optional[int] = None

        self._ws: Optional[web.WebSocketResponse] = None

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/upload", self.handle_upload)
        app.router.add_post("/restart", self.handle_restart)
        app.router.add_get("/ws", self.handle_ws)
        return app

    async def handle_upload(self, request: web.Request) -> web.Response:
        reader = await request.multipart()
        field = await reader.next()
        data = await field.read()
        self.uploads.append((field.name, field.filename, bytes(data)))

        if self._ws is not None:
            for event in self.progress_events:
                if isinstance(event, str):
                    await self._ws.send_str(event)
                else:
                    await self._ws.send_json(event)

        if self.upload_delay:
            await asyncio.sleep(self.upload_delay)

        return web.Response(status=self.upload_status, text=self.upload_body)

    async def handle_restart(self, request: web.Request) -> web.Response:
        self.restart_calls += 1
        return web.Response(status=self.restart_status, text="restart")

    async def handle_ws(self, request: web.Request) -> web.StreamResponse:
        if self.ws_stall:
            # Accept the connection but never answer the upgrade
            await self.ws_release.wait()
            raise web.HTTPServiceUnavailable()

        if not self.ws_enabled:
            raise web.HTTPNotFound()

        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._ws = ws
        self.ws_connected.set()

        try:
            async for _ in ws:
                pass
        finally:
            self._ws = None
            self.ws_closed.set()

        return ws


class TLSIdentity(NamedTuple):
    """PEM certificate and private key paths."""

    cert: Path
    key: Path


@pytest.fixture
def firmware_file(tmp_path):
    """Provide a 3-byte firmware artifact."""
    path = tmp_path / "firmware.swu"
    path.write_bytes(b"swu")
    return path


@pytest.fixture
def unused_port():
    """Provide a local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def memory_sink():
    """Provide a sink that collects records."""
    return MemorySink()


@pytest.fixture
def operation_config(firmware_file, unused_port):
    """Provide a configuration pointing at a port with no device behind it."""
    return OperationConfig(
        host="127.0.0.1",
        port=unused_port,
        artifact=firmware_file,
        timeout=5.0
    )


@pytest.fixture
def tls_identity(tmp_path):
    """Provide a self-signed certificate and key for 127.0.0.1 as PEM files."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "swupdate-test-device")])
    now = datetime.now(timezone.utc)

    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False
        )
        .sign(key, hashes.SHA256())
    )

    cert_path = tmp_path / "device.crt"
    key_path = tmp_path / "device.key"
    cert_path.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption()
    ))

    return TLSIdentity(cert=cert_path, key=key_path)


async def _serve(device: FakeDevice, ssl_context: Optional[ssl.SSLContext] = None):
    server = TestServer(device.make_app(), host="127.0.0.1")
    await server.start_server(ssl=ssl_context)
    device.port = server.port
    return server


@pytest.fixture
async def fake_device():
    """Provide a running fake SWUpdate device."""
    device = FakeDevice()
    server = await _serve(device)

    yield device

    device.ws_release.set()
    await server.close()


@pytest.fixture
async def tls_device(tls_identity):
    """Provide a fake SWUpdate device serving HTTPS and WSS."""
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(str(tls_identity.cert), str(tls_identity.key))

    device = FakeDevice()
    server = await _serve(device, context)

    yield device

    device.ws_release.set()
    await server.close()


@pytest.fixture
def device_config(fake_device, firmware_file):
    """Provide a configuration pointing at the fake device."""
    return OperationConfig(
        host="127.0.0.1",
        port=fake_device.port,
        artifact=firmware_file,
        timeout=5.0
    )


@pytest.fixture
def tls_device_config(tls_device, firmware_file):
    """Provide an HTTPS/WSS configuration for the TLS device."""
    return OperationConfig(
        host="127.0.0.1",
        port=tls_device.port,
        artifact=firmware_file,
        timeout=5.0,
        tls=TLSSettings(enabled=True, insecure=True)
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
