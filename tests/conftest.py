"""Shared fixtures for livebridge tests."""

import pytest

from livebridge.components import Quat, Transform, Vec3, Velocity
from livebridge.config import BridgeConfig
from livebridge.instance import ScriptInstance
from livebridge.lua.runtime import ScriptRuntime
from livebridge.world import InMemoryWorld


@pytest.fixture
def runtime():
    """A fresh sandboxed runtime for each test."""
    return ScriptRuntime()


@pytest.fixture
def world():
    """World with two entities: 1 at x=0 and 2 at x=10, both with transform and velocity."""
    w = InMemoryWorld()
    w.spawn(transform=Transform(), velocity=Velocity())
    w.spawn(
        transform=Transform(position=Vec3(x=10.0), orientation=Quat()),
        velocity=Velocity(linear=Vec3(y=1.0)),
    )
    return w


@pytest.fixture
def make_instance():
    """Factory for script instances with a small instruction budget."""
    def _make(source=None, **config):
        config.setdefault('instruction_budget', 100_000)
        return ScriptInstance(source=source, config=BridgeConfig(**config))
    return _make
