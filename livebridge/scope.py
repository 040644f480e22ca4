"""
Script Scope Store - the persistent variable environment of one instance.

The scope is a Lua table that survives across ticks. Scripts read and write
it as their global environment. It holds:

- `state`: a table reserved for the script's own persistent data. The store
  creates it when missing and never resets it.
- transient keys: per-tick injected inputs (query snapshots, `inbox`). They
  are injected before the script runs and extracted afterwards, so they
  never carry over into the next tick.
- anything else the script defines (functions, top-level variables).
"""

from typing import Any, List

from .lua.runtime import ScriptRuntime

STATE_KEY = 'state'


class ScopeStore:
    """Owns the scope table for one script instance."""

    def __init__(self, runtime: ScriptRuntime):
        self._runtime = runtime
        self._table = runtime.new_scope()

    @property
    def table(self):
        """The Lua table scripts execute against."""
        return self._table

    def ensure_state(self) -> None:
        """Create `state` if it is absent. Idempotent."""
        if self._runtime.rawget(self._table, STATE_KEY) is None:
            self._table[STATE_KEY] = self._runtime.table()

    @property
    def state(self):
        return self._runtime.rawget(self._table, STATE_KEY)

    def inject(self, key: str, value: Any) -> None:
        """Set a transient key for the duration of one execution."""
        if key == STATE_KEY:
            raise KeyError(f"'{STATE_KEY}' is reserved and cannot be injected")
        self._table[key] = value

    def extract(self, key: str) -> Any:
        """Remove a transient key and return its value (None if absent)."""
        value = self._runtime.rawget(self._table, key)
        self._table[key] = None
        return value

    def get(self, key: str) -> Any:
        """Read a key defined in the scope itself (builtins are not consulted)."""
        return self._runtime.rawget(self._table, key)

    def remove(self, key: str) -> None:
        self._table[key] = None

    def keys(self) -> List[Any]:
        return list(self._table.keys())

    # =========================================================================
    # Rollback support
    # =========================================================================

    def backup_state(self) -> Any:
        """Deep copy of `state`, for restoring after a failed update."""
        return self._runtime.deepcopy(self.state)

    def restore_state(self, saved: Any) -> None:
        self._table[STATE_KEY] = saved
