"""
Script Source Manager - compile-on-edit with an optimistic commit.

A proposed source is compiled with the builtin prelude helpers in scope. Only if
that succeeds does it replace the committed source; a failed proposal
leaves the last-known-good script in place and still executing.

Lifecycle:
    UNCOMPILED --(first successful proposal)--> COMMITTED
    COMMITTED  --(any proposal)--> COMMITTED
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .errors import CompileError
from .logging import get_logger
from .lua.prelude import PRELUDE_HEADER
from .lua.runtime import ScriptRuntime
from .scope import ScopeStore

log = get_logger('source')

SCRIPT_CHUNK = 'script'
COMMAND_CHUNK = 'command'

# Script-defined functions the host calls by name
ENTRY_POINTS = ('update', 'init')


class SourceState(Enum):
    UNCOMPILED = 'uncompiled'
    COMMITTED = 'committed'


@dataclass(frozen=True)
class ScriptSource:
    """Committed source text and its compiled chunk (bound to the scope)."""
    text: str
    chunk: Any


@dataclass(frozen=True)
class CompileOutcome:
    success: bool
    message: str

    def __bool__(self) -> bool:
        return self.success


def compile_with_prelude(runtime: ScriptRuntime, text: str, chunk_name: str, env) -> Any:
    """Compile `text` bound to `env`, with the prelude helpers as locals.

    The helpers are declared on the first line, so positions in errors
    refer to the lines of `text`.

    Raises:
        CompileError: If `text` does not parse
    """
    try:
        chunk = runtime.compile(PRELUDE_HEADER + text, chunk_name, env)
    except CompileError as e:
        raise CompileError(str(e), source=text) from e
    return runtime.bind(chunk, *runtime.prelude_values())


class SourceManager:
    """Holds the committed script for one instance."""

    def __init__(self, runtime: ScriptRuntime, scope: ScopeStore):
        self._runtime = runtime
        self._scope = scope
        self._committed: Optional[ScriptSource] = None

    @property
    def state(self) -> SourceState:
        return SourceState.COMMITTED if self._committed else SourceState.UNCOMPILED

    @property
    def committed(self) -> Optional[ScriptSource]:
        return self._committed

    @property
    def text(self) -> Optional[str]:
        return self._committed.text if self._committed else None

    def propose(self, text: str) -> CompileOutcome:
        """Compile `text` and commit it only if compilation succeeds."""
        if self._committed is not None and text == self._committed.text:
            return CompileOutcome(True, "Compiled successfully (unchanged)")

        try:
            chunk = compile_with_prelude(self._runtime, text, SCRIPT_CHUNK, self._scope.table)
        except CompileError as e:
            log.info("Rejected script: %s", e)
            return CompileOutcome(False, f"Compile error: {e}")

        self._committed = ScriptSource(text=text, chunk=chunk)
        # Definitions from the previous script must not outlive it
        for name in ENTRY_POINTS:
            self._scope.remove(name)
        log.info("Committed script (%d lines)", text.count('\n') + 1)
        return CompileOutcome(True, "Compiled successfully")

    def compile_command(self, text: str) -> Any:
        """Compile a one-shot command against the scope.

        Tried as an expression first (so its value can be reported), then as
        a statement.

        Raises:
            CompileError: If neither form compiles
        """
        try:
            return compile_with_prelude(self._runtime, f"return {text}", COMMAND_CHUNK, self._scope.table)
        except CompileError:
            return compile_with_prelude(self._runtime, text, COMMAND_CHUNK, self._scope.table)
