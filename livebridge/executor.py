"""
Tick Executor - one synchronous pass of a script instance per host frame.

Order of a tick:
1. Ensure `state` exists
2. Snapshot every registered query into the scope (plus `inbox` for
   declared subscriptions)
3. Run the committed script and call its `update()`
4. Evaluate the pending command, if any, after the update
5. Extract the snapshots and write them back to the world
6. Report the outcome (the instance publishes it)

Script failures never abort a tick. Without rollback the scope keeps
whatever the script changed before it failed, because Lua has no
transactional undo; with `rollback_state_on_error` the `state` table is
restored from a copy taken just before the update.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .bridge import ValueBridge
from .capabilities import INBOX_KEY, Registration
from .errors import CompileError, MarshalError
from .logging import emit_record, get_logger
from .lua.api import describe, to_lua
from .lua.runtime import ScriptRuntime
from .scope import ScopeStore
from .source import COMMAND_CHUNK, SCRIPT_CHUNK, SourceManager
from .world import MessageSource, WorldView

log = get_logger('executor')


@dataclass
class TickOutcome:
    """What happened during one tick."""
    tick: int
    ran_script: bool = False
    ran_update: bool = False
    update_error: Optional[str] = None
    update_result: Optional[str] = None
    command: Optional[str] = None
    command_response: Optional[str] = None
    snapshot_counts: dict = field(default_factory=dict)
    written: int = 0
    marshal_errors: List[MarshalError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.update_error is None and not self.marshal_errors

    def to_record(self) -> dict:
        """JSON-serializable form for structured logging."""
        return {
            'type': 'tick',
            'tick': self.tick,
            'ran_script': self.ran_script,
            'ran_update': self.ran_update,
            'update_error': self.update_error,
            'command': self.command,
            'command_response': self.command_response,
            'snapshot_counts': self.snapshot_counts,
            'written': self.written,
            'marshal_errors': [str(e) for e in self.marshal_errors],
        }


class TickExecutor:
    """Runs ticks for one instance against its fixed registration."""

    def __init__(
        self,
        runtime: ScriptRuntime,
        scope: ScopeStore,
        source: SourceManager,
        registration: Registration,
        instruction_budget: int = 0,
        rollback_state_on_error: bool = False,
    ):
        self._runtime = runtime
        self._scope = scope
        self._source = source
        self._registration = registration
        self._bridge = ValueBridge(runtime.lua)
        self._budget = instruction_budget
        self._rollback = rollback_state_on_error
        self.tick_count = 0

    @property
    def registration(self) -> Registration:
        return self._registration

    def run(self, world: WorldView, command: Optional[str] = None, paused: bool = False) -> TickOutcome:
        """Execute one tick."""
        self.tick_count += 1
        self._runtime.api.tick_count = self.tick_count
        outcome = TickOutcome(tick=self.tick_count)

        # 1. Persistent state
        self._scope.ensure_state()

        # 2. Inject inputs
        self._inject_snapshots(world, outcome)
        self._inject_inbox(world)

        # 3. Update
        if not paused and self._source.committed is not None:
            self._run_update(outcome)

        # 4. One-shot command, observing post-update state
        if command is not None:
            outcome.command = command
            outcome.command_response = self.evaluate(command)

        # 5. Write back
        self._write_back(world, outcome)
        self._scope.extract(INBOX_KEY)

        emit_record('ticks', outcome.to_record())
        return outcome

    # =========================================================================
    # Steps
    # =========================================================================

    def _inject_snapshots(self, world: WorldView, outcome: TickOutcome) -> None:
        for name, query in self._registration.queries.items():
            result = self._bridge.snapshot(world, name, query)
            self._scope.inject(name, result.table)
            outcome.snapshot_counts[name] = result.entity_count
            outcome.marshal_errors.extend(result.errors)

    def _inject_inbox(self, world: WorldView) -> None:
        if not self._registration.subscriptions:
            return
        inbox = {}
        if isinstance(world, MessageSource):
            for channel in sorted(self._registration.subscriptions):
                inbox[channel] = list(world.drain(channel))
        else:
            inbox = {channel: [] for channel in self._registration.subscriptions}
        try:
            self._scope.inject(INBOX_KEY, to_lua(inbox, self._runtime.lua))
        except TypeError as e:
            log.warning("Dropping inbox this tick: %s", e)
            self._scope.inject(INBOX_KEY, self._runtime.table())

    def _run_update(self, outcome: TickOutcome) -> None:
        saved_state = self._scope.backup_state() if self._rollback else None
        log.lua_script('update', SCRIPT_CHUNK)

        outcome.ran_script = True
        try:
            self._runtime.call(self._source.committed.chunk, budget=self._budget)
            update_fn = self._scope.get('update')
            outcome.ran_update = True
            if update_fn is not None:
                result = self._runtime.call(update_fn, budget=self._budget)
                if result is not None:
                    outcome.update_result = describe(result)
        except Exception as e:
            outcome.update_error = f"Error: {e}"
            log.debug("update failed: %s", e)
            if saved_state is not None:
                self._scope.restore_state(saved_state)

    def evaluate(self, command: str) -> str:
        """Evaluate a command against the live scope and describe the result."""
        log.lua_script('command', COMMAND_CHUNK)
        try:
            chunk = self._source.compile_command(command)
        except CompileError as e:
            return f"Error: {e}"

        try:
            result = self._runtime.call(chunk, budget=self._budget)
        except Exception as e:
            return f"Error: {e}"

        if isinstance(result, tuple):
            return "Returned: " + ', '.join(describe(r) for r in result)
        return f"Returned: {describe(result)}"

    def _write_back(self, world: WorldView, outcome: TickOutcome) -> None:
        for name, query in self._registration.queries.items():
            table = self._scope.extract(name)
            if table is None:
                log.debug("'%s' was removed by the script; skipping write-back", name)
                continue
            report = self._bridge.apply(world, name, query, table)
            outcome.written += len(report.written)
            outcome.marshal_errors.extend(report.errors)


def format_response(outcome: TickOutcome) -> Optional[str]:
    """Operator-facing text for a tick, or None if the tick was unremarkable."""
    lines: List[str] = []
    if outcome.command_response is not None:
        lines.append(outcome.command_response)
    elif outcome.update_error is not None:
        lines.append(outcome.update_error)
    elif outcome.update_result is not None:
        lines.append(f"Returned: {outcome.update_result}")

    for error in outcome.marshal_errors:
        lines.append(f"Marshal error: {error}")

    return '\n'.join(lines) if lines else None
