"""
Capability Negotiator - lets a script declare what data it needs.

A script may define `init()` returning its declared capability set:

    function init()
        return {
            subscriptions = {"keyboard"},
            queries = {
                movers = {"transform", "velocity"},           -- all write
                watched = {transform = "read"},               -- explicit access
            },
        }
    end

The negotiator evaluates `init` once, in a scratch scope, when the instance
is constructed. The resulting registration is fixed for the instance's
lifetime; editing the script later never renegotiates it.

A missing or failing `init` falls back to DEFAULT_CAPABILITIES without
reporting anything to the operator.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .bridge import QuerySpec
from .components import COMPONENT_REGISTRY, Access
from .errors import CapabilityError
from .logging import get_logger
from .lua.api import from_lua
from .lua.prelude import PRELUDE_NAMES
from .lua.runtime import ScriptRuntime
from .scope import STATE_KEY
from .source import compile_with_prelude

log = get_logger('capabilities')

INIT_CHUNK = 'init'
INBOX_KEY = 'inbox'

# Scope names a query may not shadow: entry points, injected keys, the
# prelude locals (which would hide the query) and the builtins
RESERVED_NAMES = frozenset(
    (STATE_KEY, INBOX_KEY, 'update', 'init')
    + PRELUDE_NAMES
    + ScriptRuntime.BUILTIN_NAMES
)


class CapabilitySet(BaseModel):
    """Subscriptions and named queries a script asked for."""
    model_config = ConfigDict(frozen=True, extra='forbid')

    subscriptions: FrozenSet[str] = Field(default_factory=frozenset)
    queries: Dict[str, Dict[str, Access]] = Field(default_factory=dict)

    @field_validator('subscriptions', mode='before')
    @classmethod
    def _subscriptions_from_table(cls, value):
        # An empty Lua table arrives as {} rather than []
        if isinstance(value, dict) and not value:
            return frozenset()
        return value

    @field_validator('queries', mode='before')
    @classmethod
    def _queries_from_lists(cls, value):
        """Accept `{name = {"transform"}}` as shorthand for write access."""
        if not isinstance(value, dict):
            return value
        normalized = {}
        for name, kinds in value.items():
            if isinstance(kinds, (list, tuple)):
                normalized[name] = {kind: Access.WRITE for kind in kinds}
            else:
                normalized[name] = kinds
        return normalized


DEFAULT_CAPABILITIES = CapabilitySet(
    subscriptions=frozenset(),
    queries={'entities': {'transform': Access.WRITE}},
)


@dataclass(frozen=True)
class Registration:
    """What the tick executor is allowed to fetch, fixed per instance."""
    subscriptions: FrozenSet[str] = frozenset()
    queries: Dict[str, QuerySpec] = field(default_factory=dict)
    negotiated: bool = False


def build_registration(caps: CapabilitySet, negotiated: bool = True) -> Registration:
    """Turn a declared capability set into the tick registration.

    Kinds missing from COMPONENT_REGISTRY are dropped, as are queries left
    without kinds and queries named after reserved scope keys.
    """
    queries: Dict[str, QuerySpec] = {}
    for name, kinds in caps.queries.items():
        if name in RESERVED_NAMES:
            log.warning("Query '%s' shadows a reserved scope name; ignored", name)
            continue

        supported = {k: a for k, a in kinds.items() if k in COMPONENT_REGISTRY}
        dropped = sorted(set(kinds) - set(supported))
        if dropped:
            log.warning("Query '%s': unsupported component kinds %s omitted", name, dropped)
        if not supported:
            log.warning("Query '%s' has no supported component kinds; ignored", name)
            continue

        queries[name] = QuerySpec(kinds=supported)

    return Registration(
        subscriptions=frozenset(caps.subscriptions),
        queries=queries,
        negotiated=negotiated,
    )


class CapabilityNegotiator:
    """Evaluates a script's `init` entry point into a CapabilitySet."""

    def __init__(self, runtime: ScriptRuntime, budget: int = 0):
        self._runtime = runtime
        self._budget = budget

    def declare(self, text: str) -> CapabilitySet:
        """Run `init` in a scratch scope.

        Raises:
            CapabilityError: If the script has no usable `init`
        """
        scratch = self._runtime.new_scope()
        scratch[STATE_KEY] = self._runtime.table()

        try:
            chunk = compile_with_prelude(self._runtime, text, INIT_CHUNK, scratch)
            self._runtime.call(chunk, budget=self._budget)
            init_fn = self._runtime.rawget(scratch, 'init')
            if init_fn is None:
                raise CapabilityError("script defines no init()")
            declared = self._runtime.call(init_fn, budget=self._budget)
            return CapabilitySet.model_validate(from_lua(declared) if declared is not None else {})
        except CapabilityError:
            raise
        except Exception as e:
            raise CapabilityError(f"init() failed: {e}") from e

    def negotiate(self, text: Optional[str]) -> Registration:
        """Declared registration, or the default one if declaration fails."""
        if text is None:
            return build_registration(DEFAULT_CAPABILITIES, negotiated=False)

        try:
            caps = self.declare(text)
        except CapabilityError as e:
            log.warning("Using default capabilities: %s", e)
            return build_registration(DEFAULT_CAPABILITIES, negotiated=False)

        log.info(
            "Negotiated %d subscription(s), queries %s",
            len(caps.subscriptions), sorted(caps.queries),
        )
        return build_registration(caps, negotiated=True)
