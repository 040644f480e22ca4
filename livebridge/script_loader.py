"""
Script Loader - Load live scripts from .lua and .lua.yaml files.

A plain .lua file is code only; its name comes from the filename. A
.lua.yaml file wraps the code with metadata:

    name: spinner
    description: Rotates every entity around the up axis
    version: "1.0"
    tags: [demo, motion]
    lua: |
      function update()
        state.angle = (state.angle or 0) + 0.05
        for key, e in pairs(entities) do
          e.transform.orientation = quat_from_yaw(state.angle)
        end
      end

Usage:
    from livebridge.script_loader import ScriptLoader, ScriptWatcher

    loader = ScriptLoader()
    script = loader.load_file('scripts/spinner.lua.yaml')
    instance = ScriptInstance(source=script.code, name=script.name)

    # Hot reload from disk
    watcher = ScriptWatcher('scripts/spinner.lua.yaml')
    changed = watcher.poll()   # new code, or None if the file is unchanged
    if changed is not None:
        instance.propose(changed)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .errors import ScriptValidationError
from .logging import get_logger

log = get_logger('script_loader')

LUA_SUFFIX = '.lua'
YAML_SUFFIX = '.lua.yaml'


class ScriptDocument(BaseModel):
    """Schema of a .lua.yaml document (or an inline definition)."""
    model_config = ConfigDict(extra='forbid')

    name: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None
    tags: List[str] = []
    lua: str

    @field_validator('version', mode='before')
    @classmethod
    def _version_as_text(cls, value):
        # `version: 1.0` parses as a float
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator('lua')
    @classmethod
    def _lua_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value


@dataclass
class ScriptMetadata:
    """Loaded script code plus its metadata."""

    name: str
    code: str

    description: Optional[str] = None
    version: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    source_path: Optional[str] = None
    source_format: str = 'lua'  # 'lua', 'lua.yaml' or 'inline'


def _script_name(path: Path) -> str:
    name = path.name
    for suffix in (YAML_SUFFIX, LUA_SUFFIX):
        if name.endswith(suffix):
            return name[:-len(suffix)]
    return path.stem


def _validation_messages(error: ValidationError) -> List[str]:
    messages = []
    for item in error.errors():
        loc = '.'.join(str(p) for p in item['loc']) or '<root>'
        messages.append(f"{loc}: {item['msg']}")
    return messages


class ScriptLoader:
    """
    Load and validate live scripts.

    Args:
        strict: If True, load_directory raises on the first bad file;
            otherwise bad files are logged and skipped
    """

    def __init__(self, strict: bool = False):
        self.strict = strict

    def load_file(self, path: Union[str, Path]) -> ScriptMetadata:
        """
        Load a script from a .lua or .lua.yaml file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ScriptValidationError: If a .lua.yaml document is invalid
            ValueError: If the file has neither suffix
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Script not found: {path}")

        if path.name.endswith(YAML_SUFFIX):
            return self._load_yaml_file(path)
        if path.suffix == LUA_SUFFIX:
            return ScriptMetadata(
                name=_script_name(path),
                code=path.read_text(),
                source_path=str(path),
                source_format='lua',
            )
        raise ValueError(f"Expected a .lua or .lua.yaml file, got: {path}")

    def _load_yaml_file(self, path: Path) -> ScriptMetadata:
        try:
            content = yaml.safe_load(path.read_text())
        except yaml.YAMLError as e:
            raise ScriptValidationError(f"Invalid YAML: {e}", path=str(path)) from e

        if not isinstance(content, dict):
            raise ScriptValidationError(
                f"Invalid .lua.yaml format: expected mapping, got {type(content).__name__}",
                path=str(path),
            )

        document = self._validate(content, path=str(path))
        return ScriptMetadata(
            name=document.name or _script_name(path),
            code=document.lua,
            description=document.description,
            version=document.version,
            tags=list(document.tags),
            source_path=str(path),
            source_format='lua.yaml',
        )

    def _validate(self, content: Dict[str, Any], path: Optional[str] = None) -> ScriptDocument:
        try:
            return ScriptDocument.model_validate(content)
        except ValidationError as e:
            messages = _validation_messages(e)
            where = path or 'inline script'
            raise ScriptValidationError(
                f"{where}: {'; '.join(messages)}", path=path, errors=messages,
            ) from e

    def load_inline(self, name: str, definition: Dict[str, Any]) -> ScriptMetadata:
        """
        Load an inline script definition.

        Args:
            name: Script name (used when the definition has none)
            definition: Dict with 'lua' and optional metadata
        """
        document = self._validate(definition)
        return ScriptMetadata(
            name=document.name or name,
            code=document.lua,
            description=document.description,
            version=document.version,
            tags=list(document.tags),
            source_format='inline',
        )

    def load_directory(self, directory: Union[str, Path]) -> List[ScriptMetadata]:
        """Load every .lua and .lua.yaml script in a directory, sorted by filename."""
        directory = Path(directory)

        if not directory.is_dir():
            return []

        scripts = []
        for path in sorted(directory.iterdir()):
            if not (path.name.endswith(YAML_SUFFIX) or path.suffix == LUA_SUFFIX):
                continue
            try:
                scripts.append(self.load_file(path))
            except (ScriptValidationError, OSError) as e:
                if self.strict:
                    raise
                log.warning("Failed to load %s: %s", path, e)

        return scripts

    def find_script(self, name: str, search_paths: List[Union[str, Path]]) -> Optional[ScriptMetadata]:
        """Find a script by name; .lua.yaml wins over .lua in the same directory."""
        for base_path in search_paths:
            base_path = Path(base_path)
            for candidate in (base_path / f"{name}{YAML_SUFFIX}", base_path / f"{name}{LUA_SUFFIX}"):
                if candidate.exists():
                    return self.load_file(candidate)
        return None


class ScriptWatcher:
    """
    Poll a script file for changes.

    The first poll() after construction reports nothing; later polls return
    the new code whenever the file's mtime changes and the code differs.
    A file that fails to load is logged and reported as unchanged.
    """

    def __init__(self, path: Union[str, Path], loader: Optional[ScriptLoader] = None):
        self.path = Path(path)
        self._loader = loader or ScriptLoader()
        self._mtime = self._current_mtime()
        self._code: Optional[str] = None
        if self._mtime is not None:
            try:
                self._code = self._loader.load_file(self.path).code
            except (ScriptValidationError, OSError, ValueError) as e:
                log.warning("Initial load of %s failed: %s", self.path, e)

    def _current_mtime(self) -> Optional[int]:
        try:
            return os.stat(self.path).st_mtime_ns
        except FileNotFoundError:
            return None

    def poll(self) -> Optional[str]:
        """New code if the file changed since the last poll, else None."""
        mtime = self._current_mtime()
        if mtime is None or mtime == self._mtime:
            return None
        self._mtime = mtime

        try:
            code = self._loader.load_file(self.path).code
        except (ScriptValidationError, OSError, ValueError) as e:
            log.warning("Reload of %s failed: %s", self.path, e)
            return None

        if code == self._code:
            return None
        self._code = code
        log.info("Script file changed: %s", self.path)
        return code


def load_script(path: Union[str, Path]) -> ScriptMetadata:
    """Load a single script file."""
    return ScriptLoader().load_file(path)
