"""
livebridge - live Lua scripting for an entity-component simulation.

Scripts are edited and hot-reloaded while the host loop runs; each tick the
bridge copies queried component data into the script's scope, runs the
script, and writes the results back.
"""

from livebridge.components import COMPONENT_REGISTRY, Access, Quat, Transform, Vec3, Velocity
from livebridge.config import BridgeConfig, load_config
from livebridge.errors import (
    CapabilityError,
    CompileError,
    LiveBridgeError,
    MarshalError,
    ScriptRuntimeError,
    ScriptValidationError,
    UiStateError,
)
from livebridge.instance import ScriptInstance
from livebridge.world import InMemoryWorld, MessageSource, WorldView

__version__ = '0.1.0'

__all__ = [
    'COMPONENT_REGISTRY', 'Access', 'Quat', 'Transform', 'Vec3', 'Velocity',
    'BridgeConfig', 'load_config',
    'CapabilityError', 'CompileError', 'LiveBridgeError', 'MarshalError',
    'ScriptRuntimeError', 'ScriptValidationError', 'UiStateError',
    'ScriptInstance',
    'InMemoryWorld', 'MessageSource', 'WorldView',
]
