"""
Configuration package for VoiceHub.

``load_config`` runs the loading pipeline: YAML with env expansion,
environment-only secret injection, defaults, then pydantic validation.
"""

import os

from voicehub.config.defaults import (
    apply_conversation_defaults,
    apply_logging_defaults,
    apply_storage_defaults,
)
from voicehub.config.loaders import (
    DEFAULT_CONFIG_PATH,
    load_env_file,
    load_yaml_with_env_expansion,
    resolve_config_path,
)
from voicehub.config.schema import (
    DEFAULT_SYSTEM_PROMPT,
    AnthropicProviderConfig,
    AppConfig,
    CaptureConfig,
    DatabaseConfig,
    DeepgramProviderConfig,
    DefaultsConfig,
    ElevenLabsProviderConfig,
    HumeProviderConfig,
    MistralProviderConfig,
    OpenAIProviderConfig,
    OpenRouterProviderConfig,
    ProvidersConfig,
    SecurityConfig,
    StorageConfig,
    VoiceCallConfig,
)
from voicehub.config.security import (
    inject_builtin_provider_key,
    inject_credential_encryption_key,
    inject_extra_headers,
)


def load_config(path: str = DEFAULT_CONFIG_PATH) -> AppConfig:
    """
    Load and validate configuration.

    A missing YAML file is not an error: every section has defaults, and
    secrets always come from the environment.
    """
    load_env_file()
    path = resolve_config_path(path)
    if os.path.exists(path):
        config_data = load_yaml_with_env_expansion(path)
    else:
        config_data = {}

    inject_builtin_provider_key(config_data)
    inject_credential_encryption_key(config_data)
    inject_extra_headers(config_data)

    apply_storage_defaults(config_data)
    apply_conversation_defaults(config_data)
    apply_logging_defaults(config_data)

    return AppConfig(**config_data)


__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "AnthropicProviderConfig",
    "AppConfig",
    "CaptureConfig",
    "DatabaseConfig",
    "DeepgramProviderConfig",
    "DefaultsConfig",
    "ElevenLabsProviderConfig",
    "HumeProviderConfig",
    "MistralProviderConfig",
    "OpenAIProviderConfig",
    "OpenRouterProviderConfig",
    "ProvidersConfig",
    "SecurityConfig",
    "StorageConfig",
    "VoiceCallConfig",
    "load_config",
]
