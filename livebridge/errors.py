"""
Error taxonomy for the live scripting bridge.

None of these are fatal to a running instance. Compile, runtime and marshal
errors reach the operator only through the instance's response text;
capability errors fall back to the default capability set.
"""

from typing import List, Optional


class LiveBridgeError(Exception):
    """Base class for all livebridge errors."""


class CompileError(LiveBridgeError):
    """Script source failed to compile. The committed source is retained."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        super().__init__(message)


class ScriptRuntimeError(LiveBridgeError):
    """A script entry point or command raised while executing."""


class BudgetExceededError(ScriptRuntimeError):
    """A script ran past its instruction budget."""


class MarshalError(LiveBridgeError):
    """A value could not be converted between typed and dynamic form.

    Always attributable to a single entity when raised by the value bridge.
    """

    def __init__(self, message: str, entity_key: Optional[str] = None):
        self.entity_key = entity_key
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        if self.entity_key is not None:
            return f"entity '{self.entity_key}': {message}"
        return message


class CapabilityError(LiveBridgeError):
    """The script's declared capability set could not be evaluated."""


class UiStateError(LiveBridgeError):
    """A widget state vector does not match the widget schema."""

    def __init__(self, message: str, index: Optional[int] = None):
        self.index = index
        super().__init__(message)


class ScriptValidationError(LiveBridgeError):
    """Raised when a script file fails validation."""

    def __init__(self, message: str, path: Optional[str] = None, errors: Optional[List[str]] = None):
        self.path = path
        self.errors = errors or []
        super().__init__(message)
