"""Configuration for the live scripting bridge."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

# Default .env lives next to the working directory
_env_path = Path.cwd() / '.env'


def _get_bool(key: str, default: bool) -> bool:
    """Get boolean from environment."""
    val = os.getenv(key, str(default)).lower()
    return val in ('true', '1', 'yes')


def _get_int(key: str, default: int) -> int:
    """Get integer from environment."""
    return int(os.getenv(key, str(default)))


def _get_float(key: str, default: float) -> float:
    """Get float from environment."""
    return float(os.getenv(key, str(default)))


@dataclass(frozen=True)
class BridgeConfig:
    """Settings for one script instance and its host loop."""
    instruction_budget: int = 1_000_000   # VM instructions per script call (0 = unlimited)
    rollback_state_on_error: bool = False  # Restore `state` when update raises
    tick_rate: float = 30.0                # Ticks per second for the demo loop
    web_host: str = "127.0.0.1"
    web_port: int = 8765


def load_config(env_path: Optional[Union[str, Path]] = None) -> BridgeConfig:
    """Load a .env file (if present) and build a BridgeConfig from the environment."""
    load_dotenv(Path(env_path) if env_path else _env_path)

    return BridgeConfig(
        instruction_budget=_get_int('LIVEBRIDGE_INSTRUCTION_BUDGET', 1_000_000),
        rollback_state_on_error=_get_bool('LIVEBRIDGE_ROLLBACK_STATE_ON_ERROR', False),
        tick_rate=_get_float('LIVEBRIDGE_TICK_RATE', 30.0),
        web_host=os.getenv('LIVEBRIDGE_WEB_HOST', '127.0.0.1'),
        web_port=_get_int('LIVEBRIDGE_WEB_PORT', 8765),
    )
