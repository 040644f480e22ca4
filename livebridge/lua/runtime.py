"""
Script Runtime - sandboxed Lua runtime owned by one script instance.

The runtime:
1. Initializes lupa's LuaRuntime with sandbox protections
2. Captures private helpers (load with an environment, deepcopy, the
   instruction budget hook) before the default globals are cleared
3. Builds the builtins table that every scope falls back to
4. Validates that nothing dangerous is reachable
5. Calls Lua functions under an instruction budget, translating Lua errors
   into livebridge errors

Scripts never run against Lua's global table. Each instance owns a scope
table whose __index points at the builtins, so everything a script assigns
lands in the scope and nothing leaks into the runtime.
"""

from typing import Any, Optional

from lupa import LuaError, LuaRuntime

from livebridge.errors import BudgetExceededError, CompileError, ScriptRuntimeError
from livebridge.logging import get_logger
from .api import LiveAPI
from .prelude import PRELUDE

log = get_logger('runtime')

BUDGET_MESSAGE = 'instruction budget exceeded'

# Evaluated while the full standard library is still reachable. The returned
# table keeps private references the sandbox itself never exposes.
_HELPERS_SOURCE = """
local load, setmetatable, rawget, pairs, type, error, select = load, setmetatable, rawget, pairs, type, error, select
local unpack = table.unpack or unpack
local sethook = debug.sethook
if jit then jit.off() end  -- count hooks only fire reliably in the interpreter

local helpers = {}

function helpers.compile(source, chunkname, env)
    local fn, err = load(source, chunkname, "t", env)
    if fn then
        return true, fn
    end
    return false, err
end

function helpers.new_scope(builtins)
    return setmetatable({}, {__index = builtins})
end

function helpers.rawget(t, k)
    return rawget(t, k)
end

local function deepcopy(value, seen)
    if type(value) ~= "table" then
        return value
    end
    if seen[value] then
        return seen[value]
    end
    local copy = {}
    seen[value] = copy
    for k, v in pairs(value) do
        copy[deepcopy(k, seen)] = deepcopy(v, seen)
    end
    return copy
end

function helpers.deepcopy(value)
    return deepcopy(value, {})
end

function helpers.bind(fn, ...)
    local args = {n = select("#", ...), ...}
    return function() return fn(unpack(args, 1, args.n)) end
end

-- Once the budget runs out every further instruction raises again,
-- including instructions run after a pcall caught the first error.
local exhausted = false

local function on_budget()
    if not exhausted then
        exhausted = true
        sethook(on_budget, "", 1)
    end
    error("%s", 2)
end

function helpers.set_budget(count)
    exhausted = false
    sethook(on_budget, "", count)
end

-- A C function: clearing must not execute Lua instructions under the hook
helpers.clear_budget = sethook

return helpers
""" % BUDGET_MESSAGE


def _lua_attribute_filter(obj, attr_name, is_setting):
    """Attribute filter for the Lua sandbox.

    Blocks access to:
    - Dunder attributes (__class__, __dict__, __module__, etc.)
    - Private attributes (_internal, _cache, etc.)
    - Callable attributes (methods) on Python objects

    This only applies to Python objects reached from Lua, not to Lua tables
    like `live.*`.
    """
    if attr_name.startswith('__'):
        raise AttributeError(f'Access to {attr_name} is blocked')
    if attr_name.startswith('_'):
        raise AttributeError(f'Access to private attribute {attr_name} is blocked')

    if not is_setting:
        attr = getattr(obj, attr_name, None)
        if attr is not None and callable(attr) and not isinstance(attr, type):
            raise AttributeError(f'Access to callable {attr_name} is blocked')

    return attr_name


class ScriptRuntime:
    """
    Sandboxed Lua runtime for one script instance.

    Usage:
        runtime = ScriptRuntime()
        scope = runtime.new_scope()
        chunk = runtime.compile('function update() state.n = 1 end', 'script', scope)
        runtime.call(chunk, budget=100_000)
        runtime.call(scope['update'], budget=100_000)
    """

    # Lua primitives scripts may use; everything else is cleared
    SAFE_GLOBALS = (
        'pairs', 'ipairs', 'type', 'tostring', 'tonumber', 'select',
        'pcall', 'error', 'next', 'math',
    )

    # Every name a scope falls back to
    BUILTIN_NAMES = SAFE_GLOBALS + ('unpack', 'live', 'print')

    def __init__(self, api_class: Optional[type] = None):
        # Initialize Lua with sandbox protections:
        # - register_eval=False: don't expose python.eval()
        # - register_builtins=False: don't expose python.builtins.*
        # - attribute_filter: blocks access to __dunder__ and _private attrs
        # - unpack_returned_tuples: convenience for multi-return values
        self._lua = LuaRuntime(
            register_eval=False,
            register_builtins=False,
            unpack_returned_tuples=True,
            attribute_filter=_lua_attribute_filter,
        )

        api_cls = api_class or LiveAPI
        self._api = api_cls(self)
        self._api.set_lua_runtime(self._lua)

        self._helpers = None
        self._builtins = None
        self._prelude = None
        self._setup_lua_environment()

    @property
    def lua(self) -> LuaRuntime:
        return self._lua

    @property
    def api(self) -> LiveAPI:
        return self._api

    @property
    def builtins(self):
        """Table every scope falls back to for reads."""
        return self._builtins

    def _setup_lua_environment(self) -> None:
        """Set up the sandboxed environment.

        Security model: opt-in globals only. All default globals are cleared
        and only the safe subset is reinstalled, both as globals and in the
        builtins table scopes fall back to.
        """
        self._helpers = self._lua.execute(_HELPERS_SOURCE)

        g = self._lua.globals()
        safe_globals = {name: g[name] for name in self.SAFE_GLOBALS}
        safe_globals['unpack'] = g.table.unpack if g.table.unpack is not None else g.unpack

        # string.dump can serialize functions to bytecode, string.rep is a memory DoS
        self._lua.execute("""
            local mt = getmetatable("")
            if mt and mt.__index then
                mt.__index.dump = nil
                mt.__index.rep = nil
            end
        """)

        for key in list(g.keys()):
            g[key] = None

        for key, value in safe_globals.items():
            g[key] = value

        self._lua.execute("live = {}")
        live = g.live
        self._api.register_api(live)

        self._builtins = self._lua.table_from(safe_globals)
        self._builtins['live'] = live
        self._builtins['print'] = self._api.log

        self._validate_sandbox()

    def _validate_sandbox(self) -> None:
        """Validate that the sandbox is locked down.

        Raises RuntimeError rather than run with a compromised sandbox.
        """
        critical_escapes = [
            ('python', 'python bridge gives full interpreter access'),
            ('_python', 'alternate python accessor'),
            ('ffi', 'FFI gives raw memory access'),
            ('jit', 'JIT library'),
            ('load', 'can compile arbitrary bytecode'),
            ('loadstring', 'same as load'),
            ('loadfile', 'load from filesystem'),
            ('dofile', 'execute from filesystem'),
            ('require', 'module loader'),
            ('package', 'package system'),
            ('module', 'legacy module creation'),
            ('debug', 'full introspection'),
            ('getfenv', 'environment access'),
            ('setfenv', 'environment manipulation'),
            ('getmetatable', 'metatable access'),
            ('setmetatable', 'metatable manipulation'),
            ('rawget', 'bypass __index'),
            ('rawset', 'bypass __newindex'),
            ('rawequal', 'bypass __eq'),
            ('rawlen', 'bypass __len'),
            ('_G', 'global table reference'),
            ('collectgarbage', 'GC manipulation'),
            ('newproxy', 'userdata creation'),
            ('io', 'filesystem access'),
            ('os', 'OS interface'),
            ('coroutine', 'coroutines'),
        ]

        failures = []
        for name, risk in critical_escapes:
            try:
                if self._lua.eval(f'{name} ~= nil'):
                    failures.append(f'EXPOSED: {name} - {risk}')
            except LuaError:
                pass  # eval failed = not accessible = good
            if self._builtins[name] is not None:
                failures.append(f'EXPOSED in builtins: {name} - {risk}')

        try:
            if self._lua.eval('("").dump') is not None:
                failures.append('EXPOSED: string.dump accessible via method syntax')
        except LuaError:
            pass

        if self._builtins['live'] is None:
            failures.append('ERROR: live namespace missing - sandbox broken')

        if failures:
            for f in failures:
                log.critical('SANDBOX FAILURE: %s', f)
            raise RuntimeError(
                f'Lua sandbox validation failed with {len(failures)} issue(s). '
                'This is a security risk - refusing to continue.'
            )

    # =========================================================================
    # Scopes and compilation
    # =========================================================================

    def new_scope(self):
        """Create an empty scope table backed by the builtins."""
        return self._helpers.new_scope(self._builtins)

    def table(self, *args, **kwargs):
        return self._lua.table(*args, **kwargs)

    def rawget(self, table, key) -> Any:
        """Read a key without falling back to the builtins."""
        return self._helpers.rawget(table, key)

    def deepcopy(self, value) -> Any:
        """Deep-copy a Lua value (tables recursively, cycles preserved)."""
        return self._helpers.deepcopy(value)

    def bind(self, fn, *args):
        """Function that calls `fn` with `args` and no arguments of its own."""
        return self._helpers.bind(fn, *args)

    def prelude_values(self) -> tuple:
        """The prelude helpers, compiled and evaluated once per runtime."""
        if self._prelude is None:
            chunk = self.compile(PRELUDE, 'prelude', self._builtins)
            self._prelude = chunk()
        return self._prelude

    def compile(self, source: str, chunk_name: str, env) -> Any:
        """Compile Lua source into a function bound to `env`.

        Raises:
            CompileError: With Lua's diagnostic if the source does not parse
        """
        log.lua_script('chunk', chunk_name, 'compile')
        ok, result = self._helpers.compile(source, f'={chunk_name}', env)
        if not ok:
            raise CompileError(str(result), source=source)
        return result

    # =========================================================================
    # Execution
    # =========================================================================

    def call(self, fn, *args, budget: int = 0) -> Any:
        """Call a Lua function under an instruction budget.

        Args:
            fn: Lua function
            budget: Maximum VM instructions (0 = unlimited)

        Raises:
            BudgetExceededError: The budget ran out
            ScriptRuntimeError: The function raised a Lua error
        """
        if budget > 0:
            self._helpers.set_budget(budget)
        try:
            return fn(*args)
        except LuaError as e:
            message = str(e).strip().splitlines()[0] if str(e).strip() else 'unknown Lua error'
            if BUDGET_MESSAGE in message:
                raise BudgetExceededError(message) from e
            raise ScriptRuntimeError(message) from e
        finally:
            if budget > 0:
                self._helpers.clear_budget()
