"""Shared fixtures for the hostbridge tests."""

import gc
from collections.abc import Iterator

import pytest

from hostbridge.host import HostRuntime
from hostbridge.runtime import BridgeRuntime
from hostbridge.runtime import discard_saved_state
from hostbridge.runtime import initialize
from hostbridge.runtime import is_initialized
from hostbridge.runtime import shutdown
from tests.fixtures.geometry import GeometryClasses
from tests.fixtures.geometry import build_geometry


@pytest.fixture
def host_runtime() -> HostRuntime:
    """Create a fresh host runtime.

    :returns: Host runtime with only the core assembly loaded.
    """
    return HostRuntime()


@pytest.fixture
def geometry(host_runtime: HostRuntime) -> GeometryClasses:
    """Define the fixture host classes.

    :param host_runtime: Host runtime receiving the classes.
    :returns: Defined classes.
    """
    return build_geometry(host_runtime)


@pytest.fixture(autouse=True)
def bridge(host_runtime: HostRuntime, geometry: GeometryClasses) -> Iterator[BridgeRuntime]:
    """Run each test inside a fresh bridge session.

    :param host_runtime: Host runtime to expose.
    :param geometry: Fixture classes, defined before the session starts.
    :yields: Active bridge runtime.
    """
    _ = geometry
    if is_initialized() is True:
        shutdown()
    discard_saved_state()
    gc.collect()
    runtime: BridgeRuntime = initialize(host_runtime, shutdown_mode="normal")
    yield runtime
    if is_initialized() is True:
        shutdown()
    discard_saved_state()
    gc.collect()
