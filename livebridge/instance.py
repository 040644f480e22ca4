"""
Script Instance - the owned context for one live script.

Everything that persists across ticks lives here explicitly: the Lua
runtime, the scope (with its `state` table), the committed source, the
pending command, the negotiated registration and the response text. The
host drives it synchronously, one tick at a time, from a single thread.

Usage:
    instance = ScriptInstance(source=open('mover.lua').read())
    world = InMemoryWorld()

    # Per frame:
    instance.tick(world)

    # From the operator's UI:
    instance.propose(new_source)       # hot reload
    instance.queue_command('state.x')  # one-shot, runs on the next tick
    print(instance.response_text)
"""

from typing import Any, Callable, List, Optional

from .capabilities import CapabilityNegotiator, Registration
from .config import BridgeConfig
from .executor import TickExecutor, TickOutcome, format_response
from .logging import get_logger
from .lua.runtime import ScriptRuntime
from .scope import ScopeStore
from .source import CompileOutcome, SourceManager, SourceState
from .world import WorldView

log = get_logger('instance')

ResponseListener = Callable[[str], None]


class ScriptInstance:
    """One script, its persistent scope and its tick loop."""

    def __init__(
        self,
        source: Optional[str] = None,
        config: Optional[BridgeConfig] = None,
        name: str = 'script',
    ):
        """
        Create the runtime, commit the initial source and negotiate capabilities.

        Args:
            source: Initial script source (None starts uncompiled)
            config: Budget and rollback settings
            name: Label used in logs
        """
        self.name = name
        self.config = config or BridgeConfig()
        self.paused = False

        self._runtime = ScriptRuntime()
        self._scope = ScopeStore(self._runtime)
        self._source = SourceManager(self._runtime, self._scope)

        self._pending_command: Optional[str] = None
        self._response_text = ''
        self._listeners: List[ResponseListener] = []
        self._last_update_failed = False

        if source is not None:
            self._response_text = self._source.propose(source).message

        # Capabilities come from the initial committed source only
        negotiator = CapabilityNegotiator(self._runtime, budget=self.config.instruction_budget)
        registration = negotiator.negotiate(self._source.text)

        self._executor = TickExecutor(
            self._runtime,
            self._scope,
            self._source,
            registration,
            instruction_budget=self.config.instruction_budget,
            rollback_state_on_error=self.config.rollback_state_on_error,
        )
        log.info("Instance '%s' ready with queries %s", name, sorted(registration.queries))

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def runtime(self) -> ScriptRuntime:
        return self._runtime

    @property
    def scope(self) -> ScopeStore:
        return self._scope

    @property
    def registration(self) -> Registration:
        return self._executor.registration

    @property
    def source_state(self) -> SourceState:
        return self._source.state

    @property
    def committed_source(self) -> Optional[str]:
        return self._source.text

    @property
    def pending_command(self) -> Optional[str]:
        return self._pending_command

    @property
    def response_text(self) -> str:
        return self._response_text

    @property
    def tick_count(self) -> int:
        return self._executor.tick_count

    @property
    def state(self) -> Any:
        """The script's `state` table (a Lua table, or None before the first tick)."""
        return self._scope.state

    # =========================================================================
    # Operator actions
    # =========================================================================

    def propose(self, text: str) -> CompileOutcome:
        """Hot-reload the script. A failed compile keeps the current script."""
        outcome = self._source.propose(text)
        self._publish(outcome.message)
        return outcome

    def queue_command(self, command: str) -> None:
        """Queue a one-shot command for the next tick, replacing any unconsumed one."""
        if self._pending_command is not None:
            log.debug("Replacing unconsumed command %r", self._pending_command)
        self._pending_command = command

    def add_response_listener(self, listener: ResponseListener) -> None:
        self._listeners.append(listener)

    # =========================================================================
    # Tick
    # =========================================================================

    def tick(self, world: WorldView) -> TickOutcome:
        """Run one tick against the host world."""
        command, self._pending_command = self._pending_command, None

        outcome = self._executor.run(world, command=command, paused=self.paused)

        response = format_response(outcome)
        if response is None and self._last_update_failed and outcome.ran_script:
            response = "Ok"
        if outcome.ran_script:
            self._last_update_failed = outcome.update_error is not None

        if response is not None:
            self._publish(response)
        return outcome

    def _publish(self, text: str) -> None:
        self._response_text = text
        for listener in self._listeners:
            listener(text)
