"""
Dynamic Value Bridge - typed component records <-> Lua tables.

Each tick the executor asks the bridge for a snapshot of every registered
query: a Lua table keyed by entity key, each value a table keyed by
component kind:

    {
        ["42"] = {transform = {position = {x=..}, orientation = {..}}},
        ["43"] = {...},
    }

After the script ran, the same table (possibly mutated) is applied back.

Failures are isolated per entity. An entity whose record cannot be encoded
is left out of the snapshot; an entity whose key or value cannot be decoded
is not written. Either way the other entities are unaffected, and every
failure is reported as a MarshalError naming the entity key.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from lupa import lua_type
from pydantic import BaseModel, ValidationError

from .components import Access, record_type
from .errors import MarshalError
from .logging import get_logger
from .lua.api import from_lua, to_lua
from .world import WorldView

log = get_logger('bridge')

_CANONICAL_KEY = re.compile(r'0|[1-9][0-9]*')


def entity_key(entity_id: int) -> str:
    """Scope key for an entity id."""
    if isinstance(entity_id, bool) or not isinstance(entity_id, int) or entity_id < 0:
        raise MarshalError(f"entity id must be a non-negative int, got {entity_id!r}")
    return str(entity_id)


def parse_entity_key(key: Any) -> int:
    """Parse a scope key back into an entity id.

    Only canonical decimal forms are accepted, so entity_key(parse_entity_key(k)) == k.

    Raises:
        MarshalError: If the key is not a canonical entity key
    """
    if not isinstance(key, str) or not _CANONICAL_KEY.fullmatch(key):
        raise MarshalError("not a valid entity key", entity_key=str(key))
    return int(key)


def encode_record(kind: str, record: Any, lua_runtime) -> Any:
    """Typed record -> Lua table.

    Raises:
        MarshalError: If the record is not of the type registered for `kind`
    """
    model = record_type(kind)
    if not isinstance(record, model):
        raise MarshalError(
            f"host returned {type(record).__name__} for '{kind}', expected {model.__name__}"
        )
    try:
        return to_lua(record.model_dump(), lua_runtime)
    except TypeError as e:
        raise MarshalError(str(e)) from e


def decode_record(kind: str, value: Any) -> BaseModel:
    """Lua table (or plain data) -> typed record for a component kind.

    Raises:
        MarshalError: If the value does not match the record schema
    """
    model = record_type(kind)
    data = from_lua(value)
    if not isinstance(data, dict):
        raise MarshalError(f"'{kind}' must be a table of fields")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        problems = '; '.join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise MarshalError(f"invalid '{kind}': {problems}") from e


@dataclass
class QuerySpec:
    """Component kinds a named query exposes, with their access."""
    kinds: Dict[str, Access] = field(default_factory=dict)

    @property
    def writable(self) -> List[str]:
        return [k for k, access in self.kinds.items() if access == Access.WRITE]


@dataclass
class SnapshotResult:
    """A query snapshot and the entities that could not be included."""
    table: Any
    entity_count: int = 0
    errors: List[MarshalError] = field(default_factory=list)


@dataclass
class ApplyReport:
    """Outcome of writing a snapshot back to the world."""
    written: List[int] = field(default_factory=list)
    errors: List[MarshalError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class ValueBridge:
    """Moves component data between the host world and a Lua runtime."""

    def __init__(self, lua_runtime):
        self._lua = lua_runtime

    def snapshot(self, world: WorldView, query_name: str, query: QuerySpec) -> SnapshotResult:
        """Encode every entity matched by the query into a fresh Lua table."""
        table = self._lua.table()
        result = SnapshotResult(table=table)

        for entity_id in world.entities(list(query.kinds)):
            try:
                key = entity_key(entity_id)
                entry = self._lua.table()
                for kind in query.kinds:
                    entry[kind] = encode_record(kind, world.read(entity_id, kind), self._lua)
            except Exception as e:
                error = e if isinstance(e, MarshalError) else MarshalError(str(e))
                error.entity_key = error.entity_key or str(entity_id)
                log.warning("Snapshot %s: %s", query_name, error)
                result.errors.append(error)
                continue
            table[key] = entry
            result.entity_count += 1

        return result

    def apply(self, world: WorldView, query_name: str, query: QuerySpec, table: Any) -> ApplyReport:
        """Decode a snapshot table and write writable kinds back to the world.

        Each entity is written whole or not at all.
        """
        report = ApplyReport()
        if lua_type(table) != 'table':
            report.errors.append(MarshalError(f"'{query_name}' is no longer a table"))
            return report

        writable = query.writable
        if not writable:
            return report

        matched = set(world.entities(list(query.kinds)))

        for key, entry in list(table.items()):
            try:
                entity_id = parse_entity_key(key)
                if entity_id not in matched:
                    raise MarshalError("entity does not match the query", entity_key=key)
                if lua_type(entry) != 'table':
                    raise MarshalError("entity value must be a table", entity_key=key)
                records = self._decode_entry(key, entry, writable)
            except MarshalError as e:
                log.warning("Write-back %s: %s", query_name, e)
                report.errors.append(e)
                continue

            for kind, record in records.items():
                world.write(entity_id, kind, record)
            report.written.append(entity_id)

        return report

    def _decode_entry(self, key: str, entry: Any, writable: List[str]) -> Mapping[str, BaseModel]:
        records = {}
        for kind in writable:
            value = entry[kind]
            if value is None:
                continue  # Script dropped the component: nothing to write
            try:
                records[kind] = decode_record(kind, value)
            except MarshalError as e:
                raise MarshalError(str(e), entity_key=key) from e
        return records
