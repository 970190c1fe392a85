"""Shared pytest fixtures for wadesk tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from helpers import FakeClient, make_ready, make_runtime  # noqa: E402
from wadesk.api.factory import create_app  # noqa: E402


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def runtime(fake_client):
    return make_runtime(fake_client)


@pytest.fixture
def ready_runtime(runtime):
    return make_ready(runtime)


@pytest.fixture
def api(runtime):
    """TestClient without lifespan: the client is never initialized."""
    return TestClient(create_app(runtime, auto_initialize=False))
