"""TLS trust configuration for outbound connections.

Without a TrustConfig the system trust store is used. With one, the SSL
context trusts only the pinned certificate.
"""

from __future__ import annotations

import logging
import ssl

from securexfer.core.config import TrustConfig
from securexfer.transfer.types import TransferError

logger = logging.getLogger(__name__)


class TrustConfigError(TransferError):
    """The pinned certificate could not be loaded."""


def create_pinned_ssl_context(trust: TrustConfig) -> ssl.SSLContext:
    """Build an SSL context that trusts only the pinned certificate.

    The pinned certificate is accepted as a trust anchor even when it is a
    leaf (self-signed or server) certificate rather than a CA.

    Args:
        trust: Pinned certificate configuration.

    Returns:
        Client-side SSL context with hostname checking enabled.

    Raises:
        TrustConfigError: If the certificate cannot be read or parsed.
    """
    try:
        pem = trust.load_pem()
    except OSError as e:
        raise TrustConfigError(f"Cannot read pinned certificate: {e}") from e

    try:
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cadata=pem)
    except (ssl.SSLError, ValueError) as e:
        raise TrustConfigError(f"Invalid pinned certificate: {e}") from e

    context.verify_flags |= ssl.VERIFY_X509_PARTIAL_CHAIN
    logger.debug("Created pinned SSL context")
    return context


def build_verify(trust: TrustConfig | None) -> ssl.SSLContext | bool:
    """Return the ``verify`` argument for an HTTP client.

    Args:
        trust: Optional pinned certificate configuration.

    Returns:
        A pinned SSL context, or True for default system trust.
    """
    if trust is None:
        return True
    return create_pinned_ssl_context(trust)
