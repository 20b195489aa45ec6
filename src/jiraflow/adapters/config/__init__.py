"""
Configuration adapters.
"""

from .environment import EnvironmentConfigProvider, parse_env_file
from .file_provider import FileConfigProvider, config_from_values


__all__ = [
    "EnvironmentConfigProvider",
    "FileConfigProvider",
    "config_from_values",
    "parse_env_file",
]
