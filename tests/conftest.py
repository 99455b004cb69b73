"""Shared fixtures for all tests."""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture(autouse=True)
def mock_keyring() -> Iterator[MagicMock]:
    """Keep tests away from the real OS keyring."""
    with patch("securexfer.keystore.keyring") as keyring:
        keyring.get_password.return_value = None
        yield keyring
