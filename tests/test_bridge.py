"""
Value Bridge Tests

Snapshot/apply of typed component records through Lua tables, entity key
canonicalization, and per-entity failure isolation.
"""

import pytest

from livebridge.bridge import (
    QuerySpec,
    ValueBridge,
    decode_record,
    entity_key,
    parse_entity_key,
)
from livebridge.components import Access, Transform, Vec3
from livebridge.errors import MarshalError
from livebridge.world import InMemoryWorld


@pytest.fixture
def bridge(runtime):
    return ValueBridge(runtime.lua)


@pytest.fixture
def transforms():
    return QuerySpec(kinds={'transform': Access.WRITE})


class TestEntityKeys:
    """Entity ids map to canonical decimal strings and back."""

    @pytest.mark.parametrize("entity_id", [0, 1, 42, 2**40])
    def test_round_trip(self, entity_id):
        assert parse_entity_key(entity_key(entity_id)) == entity_id

    @pytest.mark.parametrize("key", ["007", "-1", "+1", " 1", "1 ", "1.0", "", "abc", "0x10"])
    def test_non_canonical_rejected(self, key):
        with pytest.raises(MarshalError):
            parse_entity_key(key)

    def test_non_string_rejected(self):
        with pytest.raises(MarshalError):
            parse_entity_key(1)

    @pytest.mark.parametrize("entity_id", [-1, True, 1.0, "1"])
    def test_invalid_id_rejected(self, entity_id):
        with pytest.raises(MarshalError):
            entity_key(entity_id)

    def test_error_names_key(self):
        with pytest.raises(MarshalError) as exc_info:
            parse_entity_key("007")
        assert exc_info.value.entity_key == "007"
        assert "entity '007'" in str(exc_info.value)


class TestSnapshot:
    """World -> Lua table."""

    def test_snapshot_keys_and_fields(self, bridge, world, transforms):
        result = bridge.snapshot(world, 'entities', transforms)
        assert result.entity_count == 2
        assert not result.errors
        assert result.table["2"]["transform"]["position"]["x"] == 10.0
        assert result.table["1"]["transform"]["orientation"]["w"] == 1.0

    def test_snapshot_only_matching_entities(self, bridge, world, transforms):
        world.spawn(velocity=world.read(1, 'velocity'))
        result = bridge.snapshot(world, 'entities', transforms)
        both = bridge.snapshot(world, 'movers', QuerySpec(kinds={
            'transform': Access.WRITE, 'velocity': Access.READ,
        }))
        assert result.entity_count == 2
        assert both.entity_count == 2
        assert both.table["3"] is None

    def test_snapshot_includes_every_kind(self, bridge, world):
        query = QuerySpec(kinds={'transform': Access.READ, 'velocity': Access.READ})
        result = bridge.snapshot(world, 'movers', query)
        assert result.table["2"]["velocity"]["linear"]["y"] == 1.0

    def test_bad_record_isolated_to_entity(self, bridge, transforms):
        class LooseWorld(InMemoryWorld):
            def read(self, entity_id, kind):
                if entity_id == 1:
                    return {'position': {'x': 1.0}}
                return super().read(entity_id, kind)

        world = LooseWorld()
        world.spawn(transform=Transform())
        world.spawn(transform=Transform(position=Vec3(x=5.0)))

        result = bridge.snapshot(world, 'entities', transforms)
        assert result.entity_count == 1
        assert result.table["1"] is None
        assert result.table["2"]["transform"]["position"]["x"] == 5.0
        assert len(result.errors) == 1
        assert result.errors[0].entity_key == "1"
        assert "expected Transform" in str(result.errors[0])

    def test_host_read_failure_isolated(self, bridge, transforms):
        class FlakyWorld(InMemoryWorld):
            def read(self, entity_id, kind):
                if entity_id == 2:
                    raise RuntimeError("storage offline")
                return super().read(entity_id, kind)

        world = FlakyWorld()
        for _ in range(3):
            world.spawn(transform=Transform())

        result = bridge.snapshot(world, 'entities', transforms)
        assert result.entity_count == 2
        assert [e.entity_key for e in result.errors] == ["2"]
        assert "storage offline" in str(result.errors[0])


class TestApply:
    """Lua table -> world, entity by entity."""

    def test_unchanged_round_trip(self, bridge, world, transforms):
        before = {eid: world.read(eid, 'transform') for eid in (1, 2)}
        result = bridge.snapshot(world, 'entities', transforms)
        report = bridge.apply(world, 'entities', transforms, result.table)
        assert report.ok
        assert sorted(report.written) == [1, 2]
        assert {eid: world.read(eid, 'transform') for eid in (1, 2)} == before

    def test_mutation_written_back(self, bridge, world, transforms):
        table = bridge.snapshot(world, 'entities', transforms).table
        table["1"]["transform"]["position"]["x"] = 5.0
        bridge.apply(world, 'entities', transforms, table)
        assert world.read(1, 'transform').position == Vec3(x=5.0)

    def test_partial_failure_isolated(self, bridge, world, transforms):
        table = bridge.snapshot(world, 'entities', transforms).table
        table["1"]["transform"]["position"] = "oops"
        table["2"]["transform"]["position"]["x"] = 11.0

        report = bridge.apply(world, 'entities', transforms, table)

        assert [e.entity_key for e in report.errors] == ["1"]
        assert report.written == [2]
        assert world.read(1, 'transform') == Transform()
        assert world.read(2, 'transform').position.x == 11.0

    def test_entity_written_whole_or_not_at_all(self, bridge, world):
        query = QuerySpec(kinds={'transform': Access.WRITE, 'velocity': Access.WRITE})
        table = bridge.snapshot(world, 'movers', query).table
        table["1"]["transform"]["position"]["x"] = 3.0
        table["1"]["velocity"]["linear"] = "fast"

        report = bridge.apply(world, 'movers', query, table)

        assert len(report.errors) == 1
        assert world.read(1, 'transform').position.x == 0.0

    def test_read_only_kind_not_written(self, bridge, world):
        query = QuerySpec(kinds={'transform': Access.READ})
        table = bridge.snapshot(world, 'watched', query).table
        table["1"]["transform"]["position"]["x"] = 99.0
        report = bridge.apply(world, 'watched', query, table)
        assert report.ok
        assert world.read(1, 'transform').position.x == 0.0

    def test_bad_key_reported(self, bridge, world, transforms, runtime):
        table = bridge.snapshot(world, 'entities', transforms).table
        table["01"] = runtime.table()
        report = bridge.apply(world, 'entities', transforms, table)
        assert [e.entity_key for e in report.errors] == ["01"]
        assert sorted(report.written) == [1, 2]

    def test_unknown_entity_reported(self, bridge, world, transforms):
        table = bridge.snapshot(world, 'entities', transforms).table
        world.despawn(1)
        report = bridge.apply(world, 'entities', transforms, table)
        assert [e.entity_key for e in report.errors] == ["1"]
        assert report.written == [2]

    def test_removed_kind_skipped(self, bridge, world, transforms):
        table = bridge.snapshot(world, 'entities', transforms).table
        table["1"]["transform"] = None
        report = bridge.apply(world, 'entities', transforms, table)
        assert report.ok
        assert world.read(1, 'transform') == Transform()

    def test_non_table_snapshot(self, bridge, world, transforms):
        report = bridge.apply(world, 'entities', transforms, 42)
        assert not report.ok
        assert report.written == []


class TestDecodeRecord:
    """Dynamic values -> typed records."""

    def test_missing_fields_use_defaults(self):
        record = decode_record('transform', {'position': {'x': 1}})
        assert record.position == Vec3(x=1.0)
        assert record.orientation.w == 1.0

    def test_unknown_field_rejected(self):
        with pytest.raises(MarshalError, match="invalid 'transform'"):
            decode_record('transform', {'scale': 2})

    def test_wrong_type_rejected(self):
        with pytest.raises(MarshalError):
            decode_record('transform', {'position': {'x': 'left'}})

    def test_non_table_rejected(self):
        with pytest.raises(MarshalError):
            decode_record('transform', [1, 2, 3])
