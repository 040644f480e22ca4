"""
Widget protocol types.

A widget is described by an ordered schema of control descriptors and
carries an ordered state vector of the same arity. Controls and states are
tagged on `kind`, so a state vector parsed from JSON is checked against the
schema instead of being downcast blindly.
"""

from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# =============================================================================
# Schema (control descriptors)
# =============================================================================

class TextBox(BaseModel):
    """Multi-line text editor."""
    kind: Literal['text_box'] = 'text_box'


class TextInput(BaseModel):
    """Single-line text input."""
    kind: Literal['text_input'] = 'text_input'


class Button(BaseModel):
    kind: Literal['button'] = 'button'
    label: str


class CheckBox(BaseModel):
    kind: Literal['check_box'] = 'check_box'
    label: str


class Label(BaseModel):
    kind: Literal['label'] = 'label'


Control = Annotated[
    Union[TextBox, TextInput, Button, CheckBox, Label],
    Field(discriminator='kind'),
]


# =============================================================================
# State
# =============================================================================

class TextBoxState(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal['text_box'] = 'text_box'
    text: str = ''


class TextInputState(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal['text_input'] = 'text_input'
    text: str = ''


class ButtonState(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal['button'] = 'button'
    clicked: bool = False


class CheckBoxState(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal['check_box'] = 'check_box'
    checked: bool = False


class LabelState(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal['label'] = 'label'
    text: str = ''


ControlState = Annotated[
    Union[TextBoxState, TextInputState, ButtonState, CheckBoxState, LabelState],
    Field(discriminator='kind'),
]

_state_vector = TypeAdapter(List[ControlState])
_schema_vector = TypeAdapter(List[Control])


def parse_states(data: list) -> list:
    """Validate raw (JSON) control states into typed state models."""
    return _state_vector.validate_python(data)


def dump_states(states: list) -> list:
    return _state_vector.dump_python(states, mode='json')


def dump_schema(schema: list) -> list:
    return _schema_vector.dump_python(schema, mode='json')
