"""
Thread-local storage for the active EngineConfig.

Components that are constructed without an explicit config read the active
one from here. Each thread sees its own value; a thread that never set one
gets the defaults.
"""

import threading
from typing import Optional

from dashstate.config import EngineConfig


_engine_config_context = threading.local()


def set_engine_config(config: EngineConfig) -> None:
    """Set the active EngineConfig for the calling thread.

    Called when:
    - App startup builds its config
    - Tests install a non-default layout or cache policy

    Args:
        config: The config instance to make active
    """
    _engine_config_context.value = config


def get_engine_config() -> EngineConfig:
    """Get the active EngineConfig for the calling thread.

    Returns:
        The config set by set_engine_config(), or a default EngineConfig
    """
    config: Optional[EngineConfig] = getattr(_engine_config_context, 'value', None)
    return config if config is not None else EngineConfig()


def reset_engine_config() -> None:
    """Drop the calling thread's config so defaults apply again."""
    if hasattr(_engine_config_context, 'value'):
        del _engine_config_context.value
