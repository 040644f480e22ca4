"""
Sandboxed Lua runtime for live scripts.

Provides:
- Secure sandbox (no io, os, debug, require, python bridge, etc.)
- Per-instance scope tables backed by a builtins table
- Instruction-budgeted calls
- Python <-> Lua value conversion
"""

from livebridge.lua.runtime import ScriptRuntime, BUDGET_MESSAGE
from livebridge.lua.api import LiveAPI, lua_safe_return, to_lua, from_lua, describe
from livebridge.lua.prelude import PRELUDE, PRELUDE_HEADER, PRELUDE_NAMES

__all__ = [
    'ScriptRuntime', 'BUDGET_MESSAGE',
    'LiveAPI', 'lua_safe_return', 'to_lua', 'from_lua', 'describe',
    'PRELUDE', 'PRELUDE_HEADER', 'PRELUDE_NAMES',
]
