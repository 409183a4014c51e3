"""Shared fixtures."""

import pytest

from context import EngineContext
from discovery.models import DeviceIdentity


def make_context(device_id: str = "local-device", name: str = "local", shared_dir=None, port: int = 8080):
    identity = DeviceIdentity(id=device_id, name=name)
    if shared_dir is None:
        return EngineContext(identity, service_port=port)
    return EngineContext(identity, shared_dir=shared_dir, service_port=port)


@pytest.fixture
def shared_dir(tmp_path):
    d = tmp_path / "shared"
    d.mkdir()
    return d


@pytest.fixture
def context(shared_dir):
    return make_context(shared_dir=shared_dir)
