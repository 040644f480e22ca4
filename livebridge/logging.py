"""
livebridge Logging

Per-module loggers with environment-driven levels, plus structured tick
records routed to sinks.

Usage:
    from livebridge.logging import get_logger

    log = get_logger('executor')
    log.info("Script committed")
    log.lua_script('update', 'script')  # Only printed with LUA_SCRIPTS on

    from livebridge.logging import emit_record
    emit_record('ticks', {'type': 'tick', 'tick': 100})

Configuration:
    LIVEBRIDGE_LOG_LEVEL=DEBUG              # Default level
    LIVEBRIDGE_LOG_EXECUTOR=DEBUG           # Level for one module
    LIVEBRIDGE_LOG_LUA_SCRIPTS=1            # Trace script compile/execute
    LIVEBRIDGE_LOG_DIR=~/logs               # Where FileSinks write
    LIVEBRIDGE_LOGGING_TICKS_ENABLED=true   # Module settings, nested by '_'
"""

import json
import os
import time
from abc import ABC, abstractmethod
from enum import IntEnum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional


class LogLevel(IntEnum):
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50
    OFF = 100


# =============================================================================
# Structured records
# =============================================================================

class LogSink(ABC):
    """Destination for structured records."""

    @abstractmethod
    def emit(self, module: str, record: Dict[str, Any]) -> None:
        """Write one JSON-serializable record."""

    @abstractmethod
    def close(self) -> None:
        pass


class NullSink(LogSink):
    """Drops every record."""

    def emit(self, module: str, record: Dict[str, Any]) -> None:
        pass

    def close(self) -> None:
        pass


class FileSink(LogSink):
    """
    Writes records as JSONL, one file per module.

    Each file opens with a header record and is closed with a footer record.
    """

    def __init__(self, log_dir: Optional[str] = None, session_name: Optional[str] = None):
        self._log_dir = Path(log_dir or get_log_dir()).expanduser()
        self._session_name = session_name or time.strftime("%Y%m%d_%H%M%S")
        self._files: Dict[str, Any] = {}

    def _path(self, module: str) -> Path:
        return self._log_dir / f"{self._session_name}_{module}.jsonl"

    def _file(self, module: str):
        if module not in self._files:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            f = open(self._path(module), 'a')
            f.write(json.dumps({
                'type': 'header',
                'module': module,
                'session_name': self._session_name,
                'start_time': time.time(),
            }) + "\n")
            self._files[module] = f
        return self._files[module]

    def emit(self, module: str, record: Dict[str, Any]) -> None:
        if 'wall_time' not in record:
            record = {'wall_time': time.time(), **record}
        self._file(module).write(json.dumps(record) + "\n")

    def close(self) -> None:
        for module, f in self._files.items():
            f.write(json.dumps({'type': 'footer', 'module': module, 'end_time': time.time()}) + "\n")
            f.close()
        self._files.clear()

    @property
    def log_paths(self) -> Dict[str, Path]:
        """Files opened so far, by module."""
        return {module: self._path(module) for module in self._files}


_sinks: Dict[str, LogSink] = {}


def register_sink(module: str, sink: LogSink) -> None:
    _sinks[module] = sink


def emit_record(module: str, record: Dict[str, Any]) -> bool:
    """Route a record to the module's sink. False if none is registered."""
    sink = _sinks.get(module)
    if sink is None:
        return False
    sink.emit(module, record)
    return True


def close_all_sinks() -> None:
    for sink in _sinks.values():
        sink.close()
    _sinks.clear()


def create_sink_for_environment(module: str, session_name: Optional[str] = None) -> LogSink:
    """FileSink when LIVEBRIDGE_LOGGING_<MODULE>_ENABLED is set, else NullSink."""
    settings = _config['modules'].get(module.lower(), {})
    if not settings.get('enabled', False):
        return NullSink()
    return FileSink(log_dir=settings.get('dir'), session_name=session_name)


# =============================================================================
# Configuration
# =============================================================================

_config: Dict[str, Any] = {
    'default_level': LogLevel.INFO,
    'module_levels': {},
    'lua_scripts': False,
    'log_dir': None,
    'modules': {},
}


def get_log_dir() -> str:
    """LIVEBRIDGE_LOG_DIR, else the XDG data directory."""
    if _config['log_dir']:
        return str(Path(_config['log_dir']).expanduser())
    xdg_data = os.environ.get('XDG_DATA_HOME', str(Path.home() / '.local' / 'share'))
    return str(Path(xdg_data) / 'livebridge' / 'logs')


def _level_from_string(level_str: str) -> LogLevel:
    name = level_str.upper()
    if name == 'WARN':
        name = 'WARNING'
    return LogLevel.__members__.get(name, LogLevel.INFO)


def _parse_env_value(value: str) -> Any:
    lower = value.lower()
    if lower in ('true', '1', 'yes', 'on'):
        return True
    if lower in ('false', '0', 'no', 'off'):
        return False
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            pass
    return value


def _set_nested(d: Dict, keys: list, value: Any) -> None:
    for key in keys[:-1]:
        d = d.setdefault(key, {})
    d[keys[-1]] = value


def configure_logging(
    level: str = 'INFO',
    modules: Optional[Dict[str, str]] = None,
    lua_scripts: Optional[bool] = None,
) -> None:
    """
    Configure logging programmatically.

    Args:
        level: Default level for all modules
        modules: module name -> level overrides
        lua_scripts: Trace script compile/execute (None leaves it unchanged)
    """
    _config['default_level'] = _level_from_string(level)
    for mod, mod_level in (modules or {}).items():
        _config['module_levels'][mod] = _level_from_string(mod_level)
    if lua_scripts is not None:
        _config['lua_scripts'] = lua_scripts


def _load_env_config() -> None:
    env = os.environ
    reserved = ('LIVEBRIDGE_LOG_LEVEL', 'LIVEBRIDGE_LOG_LUA_SCRIPTS', 'LIVEBRIDGE_LOG_DIR')

    if 'LIVEBRIDGE_LOG_LEVEL' in env:
        _config['default_level'] = _level_from_string(env['LIVEBRIDGE_LOG_LEVEL'])
    _config['log_dir'] = env.get('LIVEBRIDGE_LOG_DIR')
    _config['lua_scripts'] = env.get('LIVEBRIDGE_LOG_LUA_SCRIPTS', '').lower() in ('1', 'true', 'yes')

    for key, value in env.items():
        if key.startswith('LIVEBRIDGE_LOG_') and key not in reserved:
            _config['module_levels'][key[len('LIVEBRIDGE_LOG_'):].lower()] = _level_from_string(value)
        elif key.startswith('LIVEBRIDGE_LOGGING_'):
            parts = key[len('LIVEBRIDGE_LOGGING_'):].lower().split('_')
            if len(parts) >= 2:
                _set_nested(_config['modules'].setdefault(parts[0], {}), parts[1:], _parse_env_value(value))


_load_env_config()


# =============================================================================
# Loggers
# =============================================================================

class BridgeLogger:
    """Prints `[module] LEVEL: msg` for one module."""

    def __init__(self, module: str):
        self.module = module
        self._module_key = module.lower().replace('.', '_')

    @property
    def level(self) -> LogLevel:
        return _config['module_levels'].get(self._module_key, _config['default_level'])

    def _log(self, level: LogLevel, label: str, msg: str, *args) -> None:
        if level < self.level:
            return
        if args:
            try:
                msg = msg % args
            except (TypeError, ValueError):
                msg = f"{msg} {args}"
        print(f"[{self.module}] {label}: {msg}")

    def debug(self, msg: str, *args) -> None:
        self._log(LogLevel.DEBUG, 'DEBUG', msg, *args)

    def info(self, msg: str, *args) -> None:
        self._log(LogLevel.INFO, 'INFO', msg, *args)

    def warning(self, msg: str, *args) -> None:
        self._log(LogLevel.WARNING, 'WARN', msg, *args)

    def error(self, msg: str, *args) -> None:
        self._log(LogLevel.ERROR, 'ERROR', msg, *args)

    def critical(self, msg: str, *args) -> None:
        self._log(LogLevel.CRITICAL, 'CRIT', msg, *args)

    def lua_script(self, script_type: str, name: str, action: str = 'execute') -> None:
        """Trace a script compile or execution (LIVEBRIDGE_LOG_LUA_SCRIPTS)."""
        if _config['lua_scripts']:
            self._log(LogLevel.DEBUG, 'LUA', f"{action} {script_type}/{name}")


@lru_cache(maxsize=64)
def get_logger(module: str) -> BridgeLogger:
    """Cached logger for a module."""
    return BridgeLogger(module)
