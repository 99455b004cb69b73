"""Shared fixtures for transfer tests: an in-memory range server and a pinned certificate."""

from __future__ import annotations

import datetime
import re
import threading
import time
from collections.abc import Callable

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from securexfer.transfer import AesCtrChunkCodec, TransferCoordinator

TEST_KEY = bytes(range(32))
BASE_URL = "https://files.test"

_RANGE_RE = re.compile(r"^bytes=(\d+)-(\d+)$")


class RangeServer:
    """Handler for httpx.MockTransport serving one file with byte ranges.

    Attributes:
        data: File content served to GET requests.
        requests: Every request received, in order.
        uploads: Content-Range header -> request body, for upload requests.
        fail_counts: Range start -> number of times to answer 500 (-1: always).
        on_get: Optional hook called with the range start before answering.
        delay: Seconds to sleep inside each GET, to make workers overlap.
    """

    def __init__(self, data: bytes = b"", chunk_size: int = 1024) -> None:
        self.data = data
        self.chunk_size = chunk_size
        self.requests: list[httpx.Request] = []
        self.uploads: dict[str, bytes] = {}
        self.fail_counts: dict[int, int] = {}
        self.on_get: Callable[[int], None] | None = None
        self.delay = 0.0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)

        if request.method == "HEAD":
            return httpx.Response(200, headers={"Content-Length": str(len(self.data))})

        if request.method == "GET":
            return self._get(request)

        body = request.read()
        with self._lock:
            self.uploads[request.headers["Content-Range"]] = body
        return httpx.Response(201)

    def _get(self, request: httpx.Request) -> httpx.Response:
        match = _RANGE_RE.match(request.headers.get("Range", ""))
        if not match:
            return httpx.Response(200, content=self.data)
        start, end = int(match.group(1)), int(match.group(2))

        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.on_get:
                self.on_get(start)
            if self.delay:
                time.sleep(self.delay)
            with self._lock:
                remaining = self.fail_counts.get(start, 0)
                if remaining:
                    self.fail_counts[start] = remaining - 1 if remaining > 0 else remaining
                    return httpx.Response(500)
        finally:
            with self._lock:
                self.active -= 1

        end = min(end, len(self.data) - 1)
        return httpx.Response(
            206,
            content=self.data[start : end + 1],
            headers={"Content-Range": f"bytes {start}-{end}/{len(self.data)}"},
        )

    def gets(self) -> list[httpx.Request]:
        """GET requests received so far."""
        with self._lock:
            return [r for r in self.requests if r.method == "GET"]

    def requested_indices(self) -> list[int]:
        """Sorted chunk indices of the GET requests received so far."""
        starts = [int(_RANGE_RE.match(r.headers["Range"]).group(1)) for r in self.gets()]  # type: ignore[union-attr]
        return sorted(start // self.chunk_size for start in starts)


def _make_coordinator(
    handler: Callable[[httpx.Request], httpx.Response],
    network_up: bool = True,
    with_codec: bool = True,
) -> TransferCoordinator:
    return TransferCoordinator(
        codec=AesCtrChunkCodec(TEST_KEY) if with_codec else None,
        network_check=lambda url: network_up,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def server() -> RangeServer:
    """A range server with an empty file; tests set data and chunk_size."""
    return RangeServer()


@pytest.fixture
def make_coordinator() -> Callable[..., TransferCoordinator]:
    """Factory for coordinators wired to an in-memory server."""
    return _make_coordinator


@pytest.fixture
def coordinator(server: RangeServer) -> TransferCoordinator:
    """A coordinator wired to the server fixture, with the network up."""
    return _make_coordinator(server)


@pytest.fixture
def codec() -> AesCtrChunkCodec:
    """The codec used by coordinator fixtures."""
    return AesCtrChunkCodec(TEST_KEY)


@pytest.fixture(scope="session")
def self_signed_pem() -> str:
    """A self-signed certificate for files.test."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "files.test")])
    now = datetime.datetime.now(datetime.UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName("files.test")]), critical=False)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
