"""
Typed component records and the fixed component registry.

These are the records the host world stores per entity. Scripts see them
as Lua tables with the same field names:

    snap["42"].transform.position.x
    snap["42"].velocity.linear.y

Only kinds listed in COMPONENT_REGISTRY can be queried; anything else a
script declares is dropped when the tick registration is built.
"""

from enum import Enum
from typing import Dict, Type

from pydantic import BaseModel, ConfigDict, Field


class Vec3(BaseModel):
    """3D vector."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class Quat(BaseModel):
    """Rotation quaternion (x, y, z, w). Defaults to identity."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 1.0


class Transform(BaseModel):
    """Entity position and orientation."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    position: Vec3 = Field(default_factory=Vec3)
    orientation: Quat = Field(default_factory=Quat)


class Velocity(BaseModel):
    """Linear and angular velocity."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    linear: Vec3 = Field(default_factory=Vec3)
    angular: Vec3 = Field(default_factory=Vec3)


class Access(str, Enum):
    """How a query exposes a component kind to scripts."""
    READ = 'read'
    WRITE = 'write'  # Read and write; only these are written back


COMPONENT_REGISTRY: Dict[str, Type[BaseModel]] = {
    'transform': Transform,
    'velocity': Velocity,
}


def record_type(kind: str) -> Type[BaseModel]:
    """Look up the record model for a component kind."""
    try:
        return COMPONENT_REGISTRY[kind]
    except KeyError:
        raise KeyError(f"Unknown component kind '{kind}'") from None
