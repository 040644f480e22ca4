"""
Editor widget protocol and the adapter that binds it to a script instance.
"""

from .adapter import (
    CONTROL_INDEX,
    EDITOR_SCHEMA,
    UI_UPDATE_CHANNEL,
    CommitScript,
    EditorView,
    EditorWidget,
    QueueCommand,
    SetPaused,
    apply_command,
    initial_state,
    read,
    reconcile,
    render,
)
from .widgets import dump_schema, dump_states, parse_states

__all__ = [
    'CONTROL_INDEX',
    'EDITOR_SCHEMA',
    'UI_UPDATE_CHANNEL',
    'CommitScript',
    'EditorView',
    'EditorWidget',
    'QueueCommand',
    'SetPaused',
    'apply_command',
    'initial_state',
    'read',
    'reconcile',
    'render',
    'dump_schema',
    'dump_states',
    'parse_states',
]
