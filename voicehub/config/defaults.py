"""
Default value application for configuration.

This module handles:
- Database and object storage locations with environment overrides
- Conversation defaults (provider/model) with environment overrides
- Logging settings
"""

import os
from typing import Any, Dict


def apply_storage_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply database and object storage defaults.

    Environment variables:
    - VOICEHUB_DB_PATH: SQLite database path (default: data/voicehub.db)
    - VOICEHUB_STORAGE_DIR: object storage directory (default: data/objects)
    - VOICEHUB_PUBLIC_BASE_URL: public URL prefix for stored objects (default: unset)
    """
    database = config_data.get('database') or {}
    db_path = os.getenv('VOICEHUB_DB_PATH', '').strip()
    if db_path:
        database['path'] = db_path
    database.setdefault('path', 'data/voicehub.db')
    config_data['database'] = database

    storage = config_data.get('storage') or {}
    storage_dir = os.getenv('VOICEHUB_STORAGE_DIR', '').strip()
    if storage_dir:
        storage['base_dir'] = storage_dir
    storage.setdefault('base_dir', 'data/objects')
    public_url = os.getenv('VOICEHUB_PUBLIC_BASE_URL', '').strip()
    if public_url:
        storage['public_base_url'] = public_url.rstrip('/')
    config_data['storage'] = storage


def apply_conversation_defaults(config_data: Dict[str, Any]) -> None:
    """
    Apply conversation-level defaults used when a conversation or the
    user's preferences leave a field unset.

    Environment variables:
    - VOICEHUB_DEFAULT_LLM_PROVIDER
    - VOICEHUB_DEFAULT_LLM_MODEL
    """
    defaults = config_data.get('defaults') or {}
    provider = os.getenv('VOICEHUB_DEFAULT_LLM_PROVIDER', '').strip()
    if provider:
        defaults['llm_provider'] = provider
    model = os.getenv('VOICEHUB_DEFAULT_LLM_MODEL', '').strip()
    if model:
        defaults['llm_model'] = model
    defaults.setdefault('llm_provider', 'openai')
    defaults.setdefault('llm_model', 'gpt-4o')
    config_data['defaults'] = defaults


def apply_logging_defaults(config_data: Dict[str, Any]) -> None:
    logging_cfg = config_data.get('logging') or {}
    logging_cfg.setdefault('level', os.getenv('LOG_LEVEL', 'info').lower())
    logging_cfg.setdefault('format', os.getenv('LOG_FORMAT', 'json').lower())
    config_data['logging'] = logging_cfg
