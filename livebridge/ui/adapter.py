"""
UI Adapter - the script editor widget.

The widget protocol addresses controls by position. This module keeps that
wire format but confines the positions to one mapping table, CONTROL_INDEX;
everything else works with the named EditorView.

    index  name      control
    0      source    TextBox            script being edited
    1      compile   Button "Compile"   commit the source
    2      command   TextInput          one-shot command
    3      run       Button "Run"       queue the command
    4      paused    CheckBox "Paused"  skip update() while checked
    5      response  Label              response text

Any message on UI_UPDATE_CHANNEL means "the widget changed": the adapter
re-reads the whole state vector, turns it into commands for the instance,
and writes back a whole new vector with the response label filled in.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from livebridge.errors import UiStateError
from livebridge.logging import get_logger
from livebridge.world import MessageSource

from .widgets import (
    Button,
    ButtonState,
    CheckBox,
    CheckBoxState,
    Label,
    LabelState,
    TextBox,
    TextBoxState,
    TextInput,
    TextInputState,
    parse_states,
)

log = get_logger('ui')

UI_UPDATE_CHANNEL = 'ui_update'

CONTROL_INDEX: Dict[str, int] = {
    'source': 0,
    'compile': 1,
    'command': 2,
    'run': 3,
    'paused': 4,
    'response': 5,
}

EDITOR_SCHEMA = [
    TextBox(),
    Button(label='Compile'),
    TextInput(),
    Button(label='Run'),
    CheckBox(label='Paused'),
    Label(),
]

_STATE_TYPES = {
    'text_box': TextBoxState,
    'text_input': TextInputState,
    'button': ButtonState,
    'check_box': CheckBoxState,
    'label': LabelState,
}


@dataclass(frozen=True)
class EditorView:
    """Named view of the editor widget's state vector."""
    source: str
    compile_clicked: bool
    command: str
    run_clicked: bool
    paused: bool
    response: str


@dataclass(frozen=True)
class CommitScript:
    source: str


@dataclass(frozen=True)
class QueueCommand:
    command: str


@dataclass(frozen=True)
class SetPaused:
    paused: bool


UiCommand = Union[CommitScript, QueueCommand, SetPaused]


def initial_state(source: str = '') -> list:
    """State vector for a freshly created editor widget."""
    return [
        TextBoxState(text=source),
        ButtonState(),
        TextInputState(),
        ButtonState(),
        CheckBoxState(),
        LabelState(),
    ]


def read(states: Sequence[Any]) -> EditorView:
    """Read a state vector into an EditorView.

    Accepts typed state models or raw dicts (as received over JSON).

    Raises:
        UiStateError: If arity or any control kind does not match the schema
    """
    if len(states) != len(EDITOR_SCHEMA):
        raise UiStateError(
            f"editor widget has {len(EDITOR_SCHEMA)} controls, got {len(states)} states"
        )

    if any(isinstance(s, dict) for s in states):
        try:
            states = parse_states(list(states))
        except ValidationError as e:
            raise UiStateError(f"invalid widget state: {e.error_count()} error(s)") from e

    for index, (control, state) in enumerate(zip(EDITOR_SCHEMA, states)):
        expected = _STATE_TYPES[control.kind]
        if not isinstance(state, expected):
            raise UiStateError(
                f"control {index} is a {control.kind}, got {type(state).__name__}",
                index=index,
            )

    return EditorView(
        source=states[CONTROL_INDEX['source']].text,
        compile_clicked=states[CONTROL_INDEX['compile']].clicked,
        command=states[CONTROL_INDEX['command']].text,
        run_clicked=states[CONTROL_INDEX['run']].clicked,
        paused=states[CONTROL_INDEX['paused']].checked,
        response=states[CONTROL_INDEX['response']].text,
    )


def reconcile(view: EditorView) -> List[UiCommand]:
    """Commands implied by the widget's current state."""
    commands: List[UiCommand] = [SetPaused(view.paused)]
    if view.compile_clicked:
        commands.append(CommitScript(view.source))
    if view.run_clicked and view.command.strip():
        commands.append(QueueCommand(view.command))
    return commands


def render(view: EditorView, response_text: str) -> list:
    """Whole replacement state vector: buttons released, response shown."""
    return [
        TextBoxState(text=view.source),
        ButtonState(clicked=False),
        TextInputState(text=view.command),
        ButtonState(clicked=False),
        CheckBoxState(checked=view.paused),
        LabelState(text=response_text),
    ]


def apply_command(instance, command: UiCommand) -> None:
    """Carry out one UI command on a ScriptInstance."""
    if isinstance(command, CommitScript):
        instance.propose(command.source)
    elif isinstance(command, QueueCommand):
        instance.queue_command(command.command)
    elif isinstance(command, SetPaused):
        if instance.paused != command.paused:
            log.info("Script %s", 'paused' if command.paused else 'resumed')
        instance.paused = command.paused
    else:
        raise TypeError(f"Unknown UI command {command!r}")


class EditorWidget:
    """
    Host-side editor widget bound to one script instance.

    Usage:
        widget = EditorWidget(instance)

        # Per frame, before instance.tick():
        widget.poll(world)   # reconciles if a UI update message arrived
        widget.states        # vector to hand to the renderer
    """

    def __init__(self, instance, states: Optional[list] = None):
        self._instance = instance
        self._states = states or initial_state(instance.committed_source or '')

    @property
    def instance(self):
        return self._instance

    @property
    def states(self) -> list:
        return list(self._states)

    def set_states(self, states: Sequence[Any]) -> None:
        """Replace the state vector (what the UI reports back)."""
        read(states)  # validate before accepting
        self._states = parse_states(list(states)) if any(isinstance(s, dict) for s in states) else list(states)

    def update(self, states: Optional[Sequence[Any]] = None) -> list:
        """Reconcile a state vector and return the replacement vector."""
        if states is not None:
            self.set_states(states)
        view = read(self._states)
        for command in reconcile(view):
            apply_command(self._instance, command)
        self._states = render(view, self._instance.response_text)
        return self.states

    def refresh(self) -> list:
        """Project the latest response text into the label."""
        view = read(self._states)
        self._states = render(view, self._instance.response_text)
        return self.states

    def poll(self, world: Any) -> bool:
        """Reconcile if any message arrived on the UI update channel."""
        if not isinstance(world, MessageSource):
            return False
        if not world.drain(UI_UPDATE_CHANNEL):
            return False
        self.update()
        return True
