"""Test configuration for server test suite."""

import os

import pytest

# Keep password hashing fast and the startup checks quiet under test.
# These must be set before provisioner.core.config is imported.
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "1000")
os.environ.setdefault("INSTALL_COMPLETION_TIMEOUT_SECONDS", "30")


@pytest.fixture
def anyio_backend():
    return "asyncio"
