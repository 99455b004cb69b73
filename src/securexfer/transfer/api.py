"""HTTP connection factory for chunk transfers.

This module provides:
- ConnectionFactory: Builds and opens outbound requests with custom headers,
  optional range headers and optional certificate pinning
- Metadata probing (total size of a remote file)
"""

from __future__ import annotations

import logging
import re
import ssl
from collections.abc import Iterable

import httpx

from securexfer.core.chunking import ChunkRange
from securexfer.core.config import CONNECT_TIMEOUT, READ_TIMEOUT, TrustConfig
from securexfer.transfer.trust import build_verify
from securexfer.transfer.types import ProbeError, TransferConnectionError

logger = logging.getLogger(__name__)

_CONTENT_RANGE_RE = re.compile(r"^bytes\s+(?:\d+-\d+|\*)/(\d+)$")

# Exceptions that mean "this connection attempt failed"
TRANSPORT_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.HTTPError,
    ssl.SSLError,
    OSError,
)


def parse_content_range_total(value: str | None) -> int | None:
    """Extract the total size from a ``Content-Range`` response header.

    Args:
        value: Header value such as ``bytes 0-0/1234`` or ``bytes */1234``.

    Returns:
        Total size, or None if absent or unknown (``*``).
    """
    if not value:
        return None
    match = _CONTENT_RANGE_RE.match(value.strip())
    if not match:
        return None
    return int(match.group(1))


class ConnectionFactory:
    """Builds one outbound request per chunk attempt.

    Every request carries the job's custom headers. When a TrustConfig is
    given, TLS trusts only the pinned certificate; otherwise system trust is
    used. Connect and read timeouts are fixed at 15 seconds.

    Usage:
        with ConnectionFactory(headers, trust) as factory:
            size = factory.probe_size(url)
            request = factory.build_request("GET", url, byte_range=chunk)
            response = factory.open(request)
    """

    def __init__(
        self,
        headers: dict[str, str] | None = None,
        trust: TrustConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the factory.

        Args:
            headers: Custom headers applied to every request.
            trust: Optional pinned certificate configuration.
            transport: Optional transport override (used by tests).
        """
        self._headers = dict(headers or {})
        self._client = httpx.Client(
            timeout=httpx.Timeout(READ_TIMEOUT, connect=CONNECT_TIMEOUT),
            verify=build_verify(trust),
            transport=transport,
            follow_redirects=True,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> ConnectionFactory:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def build_request(
        self,
        method: str,
        url: str,
        *,
        byte_range: ChunkRange | None = None,
        content_range: str | None = None,
        content: bytes | Iterable[bytes] | None = None,
        content_length: int | None = None,
    ) -> httpx.Request:
        """Build a request with custom headers and an optional range header.

        Args:
            method: HTTP method.
            url: Target URL.
            byte_range: Chunk to request via a ``Range`` header (download).
            content_range: ``Content-Range`` header value (upload).
            content: Request body, as bytes or an iterator of buffers.
            content_length: Explicit body length for streamed bodies.

        Returns:
            The request, ready to be opened.
        """
        headers = dict(self._headers)
        if byte_range is not None:
            headers["Range"] = byte_range.range_header
        if content_range is not None:
            headers["Content-Range"] = content_range
        if content_length is not None:
            headers["Content-Length"] = str(content_length)
        if content is not None:
            headers.setdefault("Content-Type", "application/octet-stream")
        return self._client.build_request(method, url, headers=headers, content=content)

    def open(self, request: httpx.Request) -> httpx.Response:
        """Send a request and return the streaming response.

        The caller must close the returned response.

        Args:
            request: Request built with build_request().

        Returns:
            Response with a 2xx status whose body has not been read yet.

        Raises:
            TransferConnectionError: On transport failure or non-2xx status.
        """
        try:
            response = self._client.send(request, stream=True)
        except TRANSPORT_EXCEPTIONS as e:
            raise TransferConnectionError(
                f"{request.method} {request.url} failed: {e}"
            ) from e

        return self._handle_response(request, response)

    def _handle_response(self, request: httpx.Request, response: httpx.Response) -> httpx.Response:
        """Map a non-2xx response to TransferConnectionError.

        Raises:
            TransferConnectionError: If the status is not 2xx (the response is closed).
        """
        if response.is_success:
            return response

        response.close()
        raise TransferConnectionError(
            f"{request.method} {request.url} returned HTTP {response.status_code}",
            response.status_code,
        )

    def probe_size(self, url: str) -> int:
        """Determine the total size of a remote file without reading its body.

        Issues a HEAD request. If it carries no usable Content-Length, falls
        back to a ``Range: bytes=0-0`` GET and reads the total from
        Content-Range.

        Args:
            url: File URL.

        Returns:
            Total size in bytes.

        Raises:
            ProbeError: If the size cannot be determined.
        """
        try:
            response = self._client.head(url, headers=self._headers)
        except TRANSPORT_EXCEPTIONS as e:
            raise ProbeError(f"Metadata probe of {url} failed: {e}") from e

        length = response.headers.get("Content-Length")
        if response.is_success and length is not None and length.isdigit():
            logger.debug(f"Probe HEAD {url}: {length} bytes")
            return int(length)

        logger.debug(
            f"HEAD {url} returned {response.status_code} without a length, "
            f"probing with a range request"
        )
        headers = {**self._headers, "Range": "bytes=0-0"}
        try:
            with self._client.stream("GET", url, headers=headers) as response:
                total = parse_content_range_total(response.headers.get("Content-Range"))
                if response.status_code in (206, 416) and total is not None:
                    return total
                length = response.headers.get("Content-Length")
                if response.status_code == 200 and length is not None and length.isdigit():
                    return int(length)
                status = response.status_code
        except TRANSPORT_EXCEPTIONS as e:
            raise ProbeError(f"Metadata probe of {url} failed: {e}") from e

        raise ProbeError(f"Cannot determine size of {url} (HTTP {status})")
