"""
Configuration file loaders and path resolution.

This module handles:
- Path resolution (relative paths are anchored at the project root)
- Optional .env loading
- YAML loading with ${VAR}, $VAR and ${VAR:-fallback} expansion
"""

import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv


# Project root directory (parent of voicehub/)
_PROJ_DIR = Path(__file__).parent.parent.parent.resolve()

DEFAULT_CONFIG_PATH = "config/voicehub.yaml"

_FALLBACK_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*):-([^}]*)\}")


def resolve_config_path(path: str) -> str:
    """
    Resolve a configuration or data path to an absolute path.

    If the provided path is not absolute, it is resolved relative to the project root.
    """
    if not os.path.isabs(path):
        return os.path.join(_PROJ_DIR, path)
    return path


def load_env_file(path: str = ".env") -> bool:
    """
    Load a dotenv file into the process environment without overriding
    variables that are already set.

    Returns True if the file existed and was loaded.
    """
    env_path = resolve_config_path(path)
    if not os.path.exists(env_path):
        return False
    return load_dotenv(env_path, override=False)


def expand_env(text: str) -> str:
    """
    Expand environment references in raw config text.

    ``${VAR:-fallback}`` uses the fallback when VAR is unset or empty;
    plain ``${VAR}`` and ``$VAR`` follow os.path.expandvars and are left
    as written when VAR is unset.
    """
    def _fallback(match):
        return os.environ.get(match.group(1)) or match.group(2)

    return os.path.expandvars(_FALLBACK_PATTERN.sub(_fallback, text))


def load_yaml_with_env_expansion(path: str) -> dict:
    """
    Load a VoiceHub YAML file with environment expansion.

    Raises:
        FileNotFoundError: If configuration file doesn't exist
        yaml.YAMLError: If YAML parsing fails or the document is not a mapping
    """
    try:
        with open(path, 'r') as f:
            raw = f.read()
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found at: {path}")

    try:
        config_data = yaml.safe_load(expand_env(raw))
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Error parsing YAML configuration: {e}")

    if config_data is None:
        return {}
    if not isinstance(config_data, dict):
        raise yaml.YAMLError(f"Configuration root must be a mapping, got {type(config_data).__name__}")
    return config_data
