"""Configuration module for chaz."""

from chaz.config.loader import get_config_state_dir, load_config
from chaz.config.schema import (
    BackendConfig,
    BackendKind,
    Config,
    ModelConfig,
    RoleDetails,
    RoleExample,
)

__all__ = [
    "BackendConfig",
    "BackendKind",
    "Config",
    "ModelConfig",
    "RoleDetails",
    "RoleExample",
    "get_config_state_dir",
    "load_config",
]
