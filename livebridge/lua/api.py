"""
Lua value conversion and the `live.*` API namespace.

This module provides:
- Python -> Lua conversion (to_lua) that never leaks raw Python containers
- Lua -> Python conversion (from_lua) for tables coming back from scripts
- describe(), a Lua-flavoured rendering of values for response text
- @lua_safe_return decorator
- LiveAPI, the functions scripts reach through `live.*`
"""

from functools import wraps
from typing import Any, Callable, TYPE_CHECKING
import math
import random

from lupa import lua_type
from pydantic import BaseModel

from livebridge.errors import MarshalError
from livebridge.logging import get_logger

if TYPE_CHECKING:
    from .runtime import ScriptRuntime

log = get_logger('lua')

# Deepest table nesting accepted from scripts (also guards against cycles)
MAX_TABLE_DEPTH = 32


def to_lua(value: Any, lua_runtime) -> Any:
    """Convert a Python value to a Lua-safe value.

    Safe values:
    - Primitives: None, bool, int, float, str
    - Lua tables: Created via lua.table() for lists/dicts/pydantic models

    This ensures Lua code never receives raw Python objects (lists, dicts, etc.)
    which have different semantics (0-indexed, no ipairs/pairs support, no # operator).
    """
    if value is None:
        return None
    if isinstance(value, (bool, int, float, str)):
        return value

    if lua_type(value) is not None:
        # Already a Lua object
        return value

    if isinstance(value, BaseModel):
        return to_lua(value.model_dump(), lua_runtime)

    if isinstance(value, (list, tuple)):
        # Convert to 1-indexed Lua table
        lua_table = lua_runtime.table()
        for i, item in enumerate(value, start=1):
            lua_table[i] = to_lua(item, lua_runtime)
        return lua_table

    if isinstance(value, dict):
        lua_table = lua_runtime.table()
        for k, v in value.items():
            if not isinstance(k, (str, int, float, bool)):
                raise TypeError(
                    f"Dict key must be str/int/float, got {type(k).__name__}"
                )
            lua_table[k] = to_lua(v, lua_runtime)
        return lua_table

    # bytes - reject, we don't want "b'...'" strings to sneak through
    if isinstance(value, bytes):
        raise TypeError("Cannot pass bytes to Lua - decode to str first")

    # sets - reject, not predictable order
    if isinstance(value, set):
        raise TypeError("Cannot convert set to Lua - convert to list first")

    raise TypeError(
        f"Cannot convert {type(value).__name__} to Lua-safe value. "
        f"Only primitives, lists, dicts and records can cross into Lua."
    )


def _is_sequence(keys: list) -> bool:
    """True if keys are exactly 1..n (a Lua array)."""
    if not keys or not all(isinstance(k, int) and not isinstance(k, bool) for k in keys):
        return False
    return sorted(keys) == list(range(1, len(keys) + 1))


def from_lua(value: Any, _depth: int = 0) -> Any:
    """Convert a Lua value into plain Python data.

    Tables with keys 1..n become lists, other tables become dicts (an empty
    table becomes an empty dict). Functions, coroutines and userdata cannot
    be represented and raise MarshalError.
    """
    kind = lua_type(value)
    if kind is None:
        return value
    if kind != 'table':
        raise MarshalError(f"cannot convert Lua {kind} to data")
    if _depth >= MAX_TABLE_DEPTH:
        raise MarshalError(f"table nesting deeper than {MAX_TABLE_DEPTH} (cycle?)")

    items = list(value.items())
    keys = [k for k, _ in items]
    if _is_sequence(keys):
        return [from_lua(v, _depth + 1) for _, v in sorted(items, key=lambda kv: kv[0])]

    result = {}
    for k, v in items:
        if lua_type(k) is not None:
            raise MarshalError("table keys must be strings or numbers")
        result[k] = from_lua(v, _depth + 1)
    return result


def describe(value: Any, _depth: int = 0) -> str:
    """Render a value the way an operator expects to read it."""
    kind = lua_type(value)
    if kind is None:
        if value is None:
            return 'nil'
        if isinstance(value, bool):
            return 'true' if value else 'false'
        return str(value)
    if kind != 'table':
        return kind
    if _depth >= 3:
        return '{...}'

    items = list(value.items())
    keys = [k for k, _ in items]
    if _is_sequence(keys):
        inner = ', '.join(describe(v, _depth + 1) for _, v in sorted(items, key=lambda kv: kv[0]))
    else:
        inner = ', '.join(
            f"{k} = {describe(v, _depth + 1)}"
            for k, v in sorted(items, key=lambda kv: str(kv[0]))
        )
    return '{' + inner + '}'


def lua_safe_return(method: Callable) -> Callable:
    """Decorator that converts return values to Lua-safe types.

    Wraps methods on API classes to ensure they only return primitives or
    Lua-native tables.
    """
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        result = method(self, *args, **kwargs)
        return to_lua(result, self._lua)
    return wrapper


class LiveAPI:
    """
    Functions exposed to scripts under the `live` namespace.

    Provides:
    - Math helpers
    - Tick information
    - Debug logging
    """

    def __init__(self, runtime: 'ScriptRuntime'):
        self._runtime = runtime
        self._lua = None  # Set by ScriptRuntime after init
        self.tick_count = 0

    def set_lua_runtime(self, lua) -> None:
        """Set the Lua runtime reference for converting return values."""
        self._lua = lua

    def register_api(self, namespace) -> None:
        """Register this API's methods on the live.* namespace."""
        namespace.sqrt = self.math_sqrt
        namespace.atan2 = self.math_atan2
        namespace.random = self.math_random
        namespace.random_range = self.math_random_range
        namespace.clamp = self.math_clamp
        namespace.lerp = self.math_lerp

        namespace.tick = self.get_tick
        namespace.keys = self.keys

        namespace.log = self.log

    # =========================================================================
    # Math helpers (safe, no side effects)
    # =========================================================================

    def math_sqrt(self, x: float) -> float:
        return math.sqrt(max(0, x))

    def math_atan2(self, y: float, x: float) -> float:
        return math.atan2(y, x)

    def math_random(self) -> float:
        """Return random float in [0, 1)."""
        return random.random()

    def math_random_range(self, min_val: float, max_val: float) -> float:
        """Return random float in [min, max]."""
        return random.uniform(min_val, max_val)

    def math_clamp(self, value: float, min_val: float, max_val: float) -> float:
        return max(min_val, min(max_val, value))

    def math_lerp(self, a: float, b: float, t: float) -> float:
        return a + (b - a) * t

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_tick(self) -> int:
        """Number of ticks executed by this instance so far."""
        return self.tick_count

    @lua_safe_return
    def keys(self, table) -> list:
        """Sorted keys of a table (snapshots are keyed by entity id strings)."""
        if lua_type(table) != 'table':
            return []
        return sorted((k for k in table.keys() if isinstance(k, (str, int, float))), key=str)

    # =========================================================================
    # Debug
    # =========================================================================

    def log(self, *parts) -> None:
        """Log a message from a script."""
        log.info(' '.join(describe(p) for p in parts))
