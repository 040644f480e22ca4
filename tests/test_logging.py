"""
Logging Tests

Per-module loggers, env-driven configuration and structured sinks.
"""

import copy
import json

import pytest

from livebridge import logging as bridge_logging
from livebridge.logging import (
    FileSink,
    NullSink,
    configure_logging,
    create_sink_for_environment,
    emit_record,
    get_logger,
    register_sink,
)


@pytest.fixture(autouse=True)
def restore_logging():
    """Logging configuration and sinks are module-global; restore them after each test."""
    saved = copy.deepcopy(bridge_logging._config)
    saved_sinks = dict(bridge_logging._sinks)
    yield
    bridge_logging._config.clear()
    bridge_logging._config.update(saved)
    bridge_logging._sinks.clear()
    bridge_logging._sinks.update(saved_sinks)


class TestLogger:

    def test_format(self, capsys):
        configure_logging(level='INFO')
        get_logger('unit').info("hello %s", "there")
        assert capsys.readouterr().out == "[unit] INFO: hello there\n"

    def test_level_filtering(self, capsys):
        configure_logging(level='WARNING')
        log = get_logger('unit')
        log.info("hidden")
        log.warning("shown")
        assert capsys.readouterr().out == "[unit] WARN: shown\n"

    def test_module_override(self, capsys):
        configure_logging(level='ERROR', modules={'chatty': 'DEBUG'})
        get_logger('chatty').debug("detail")
        get_logger('quiet').debug("detail")
        assert capsys.readouterr().out == "[chatty] DEBUG: detail\n"

    def test_cached(self):
        assert get_logger('same') is get_logger('same')

    def test_lua_script_tracing(self, capsys):
        configure_logging(level='DEBUG', lua_scripts=True)
        get_logger('executor').lua_script('update', 'script')
        assert "LUA: execute update/script" in capsys.readouterr().out

    def test_lua_script_tracing_off(self, capsys):
        configure_logging(level='DEBUG', lua_scripts=False)
        get_logger('executor').lua_script('update', 'script')
        assert capsys.readouterr().out == ""

    def test_bad_format_args_do_not_raise(self, capsys):
        configure_logging(level='INFO')
        get_logger('unit').info("%d items", "many")
        assert "many" in capsys.readouterr().out


class TestSinks:

    def test_file_sink_writes_jsonl(self, tmp_path):
        sink = FileSink(log_dir=str(tmp_path), session_name="run")
        sink.emit('ticks', {'tick': 1})
        path = sink.log_paths['ticks']
        sink.close()

        lines = [json.loads(line) for line in path.read_text().splitlines()]
        assert [line['type'] for line in lines if 'type' in line] == ['header', 'footer']
        assert {'tick': 1}.items() <= lines[1].items()

    def test_emit_without_sink(self):
        assert emit_record('nobody_listens', {'x': 1}) is False

    def test_emit_to_registered_sink(self, tmp_path):
        sink = FileSink(log_dir=str(tmp_path), session_name="run")
        register_sink('ticks', sink)
        assert emit_record('ticks', {'tick': 2}) is True
        sink.close()

    def test_environment_sink_disabled(self):
        assert isinstance(create_sink_for_environment('ticks'), NullSink)

    def test_environment_sink_enabled(self, tmp_path):
        bridge_logging._config['modules']['ticks'] = {'enabled': True, 'dir': str(tmp_path)}
        assert isinstance(create_sink_for_environment('ticks'), FileSink)

    def test_executor_emits_tick_records(self, tmp_path, make_instance, world):
        sink = FileSink(log_dir=str(tmp_path), session_name="run")
        register_sink('ticks', sink)
        make_instance("function update() end").tick(world)
        path = sink.log_paths['ticks']
        sink.close()

        records = [json.loads(line) for line in path.read_text().splitlines()]
        ticks = [r for r in records if r.get('type') == 'tick']
        assert ticks[0]['tick'] == 1
        assert ticks[0]['ran_update'] is True
