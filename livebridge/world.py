"""
Host world interface.

The entity-component storage belongs to the host. The bridge only needs to
iterate the entities matching a query, read a typed component, write a
typed component, and (for declared subscriptions) drain a message channel.

InMemoryWorld is a small host implementation used by the CLI and tests.
"""

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Protocol, runtime_checkable

from pydantic import BaseModel

from .components import COMPONENT_REGISTRY


@runtime_checkable
class WorldView(Protocol):
    """What the bridge consumes from the host's entity-component world."""

    def entities(self, kinds: Iterable[str]) -> Iterable[int]:
        """Entity ids that have every component kind in `kinds`."""
        ...

    def read(self, entity_id: int, kind: str) -> BaseModel:
        """Read a typed component."""
        ...

    def write(self, entity_id: int, kind: str, record: BaseModel) -> None:
        """Write a typed component."""
        ...


@runtime_checkable
class MessageSource(Protocol):
    """Optional host capability: per-channel message inboxes."""

    def drain(self, channel: str) -> List[Any]:
        """Take all messages queued on a channel since the last drain."""
        ...


class InMemoryWorld:
    """
    Dict-backed entity-component store.

    Usage:
        world = InMemoryWorld()
        eid = world.spawn(transform=Transform())
        world.send('ui_update', {'source': 'keyboard'})
    """

    def __init__(self):
        self._next_id = 1
        self._components: Dict[int, Dict[str, BaseModel]] = {}
        self._channels: defaultdict[str, List[Any]] = defaultdict(list)

    def spawn(self, **components: BaseModel) -> int:
        """Create an entity with the given components and return its id."""
        entity_id = self._next_id
        self._next_id += 1
        self._components[entity_id] = {}
        for kind, record in components.items():
            self.write(entity_id, kind, record)
        return entity_id

    def despawn(self, entity_id: int) -> None:
        self._components.pop(entity_id, None)

    def has(self, entity_id: int, kind: str) -> bool:
        return kind in self._components.get(entity_id, {})

    def entities(self, kinds: Iterable[str]) -> List[int]:
        wanted = list(kinds)
        return [
            eid for eid, comps in self._components.items()
            if all(k in comps for k in wanted)
        ]

    def read(self, entity_id: int, kind: str) -> BaseModel:
        try:
            return self._components[entity_id][kind]
        except KeyError:
            raise KeyError(f"Entity {entity_id} has no '{kind}' component") from None

    def write(self, entity_id: int, kind: str, record: BaseModel) -> None:
        if entity_id not in self._components:
            raise KeyError(f"Unknown entity {entity_id}")
        expected = COMPONENT_REGISTRY.get(kind)
        if expected is not None and not isinstance(record, expected):
            raise TypeError(
                f"Component '{kind}' must be {expected.__name__}, got {type(record).__name__}"
            )
        self._components[entity_id][kind] = record

    def send(self, channel: str, message: Any) -> None:
        """Queue a message on a channel."""
        self._channels[channel].append(message)

    def drain(self, channel: str) -> List[Any]:
        messages = self._channels.pop(channel, [])
        return messages

    @property
    def entity_count(self) -> int:
        return len(self._components)
