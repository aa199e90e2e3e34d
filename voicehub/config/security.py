"""
Security-critical configuration injection.

SECURITY POLICY:
- API keys and encryption keys MUST NEVER be in YAML files
- The built-in OpenAI channel key comes from OPENAI_API_KEY only
- The credential encryption key comes from VOICEHUB_CREDENTIAL_KEY only
- Per-user vendor keys live in the credential store, never in config
"""

import os
from typing import Any, Dict


def _is_nonempty_string(val: Any) -> bool:
    return isinstance(val, str) and val.strip() != ""


def expand_string_tokens(value: str) -> str:
    """
    Expand environment variable tokens in a string.

    Supports ${VAR} and $VAR syntax. Undefined variables are left unchanged.
    """
    return os.path.expandvars(value or "")


def _section(config_data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = config_data.get(key)
    if not isinstance(value, dict):
        value = {}
    config_data[key] = value
    return value


def inject_builtin_provider_key(config_data: Dict[str, Any]) -> None:
    """
    Inject the deployment-owned OpenAI key from the environment ONLY.

    Any api_key present in YAML is discarded.
    """
    providers = _section(config_data, 'providers')
    openai_cfg = providers.get('openai')
    if not isinstance(openai_cfg, dict):
        openai_cfg = {}
    key = os.getenv('OPENAI_API_KEY')
    openai_cfg['api_key'] = key.strip() if _is_nonempty_string(key) else None
    org = os.getenv('OPENAI_ORGANIZATION')
    if _is_nonempty_string(org):
        openai_cfg['organization'] = org.strip()
    providers['openai'] = openai_cfg


def inject_credential_encryption_key(config_data: Dict[str, Any]) -> None:
    """Inject the at-rest credential encryption key from VOICEHUB_CREDENTIAL_KEY ONLY."""
    security = _section(config_data, 'security')
    key = os.getenv('VOICEHUB_CREDENTIAL_KEY')
    security['credential_encryption_key'] = key.strip() if _is_nonempty_string(key) else None


def inject_extra_headers(config_data: Dict[str, Any]) -> None:
    """Expand ${VAR} tokens inside configured per-provider extra headers."""
    headers = config_data.get('extra_headers')
    if not isinstance(headers, dict):
        return
    for provider_id, values in headers.items():
        if not isinstance(values, dict):
            continue
        headers[provider_id] = {
            str(name): expand_string_tokens(str(val)) for name, val in values.items()
        }
