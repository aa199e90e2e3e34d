"""
Unit tests for config.defaults module.
"""

from voicehub.config.defaults import (
    apply_conversation_defaults,
    apply_logging_defaults,
    apply_storage_defaults,
)


class TestApplyStorageDefaults:
    """Tests for apply_storage_defaults."""

    def test_defaults_when_unset(self, monkeypatch):
        for var in ("VOICEHUB_DB_PATH", "VOICEHUB_STORAGE_DIR", "VOICEHUB_PUBLIC_BASE_URL"):
            monkeypatch.delenv(var, raising=False)
        config = {}

        apply_storage_defaults(config)

        assert config["database"]["path"] == "data/voicehub.db"
        assert config["storage"]["base_dir"] == "data/objects"
        assert "public_base_url" not in config["storage"]

    def test_env_overrides_yaml(self, monkeypatch):
        monkeypatch.setenv("VOICEHUB_DB_PATH", "/var/lib/voicehub/db.sqlite")
        monkeypatch.setenv("VOICEHUB_PUBLIC_BASE_URL", "https://cdn.example.com/")
        config = {"database": {"path": "yaml.db"}}

        apply_storage_defaults(config)

        assert config["database"]["path"] == "/var/lib/voicehub/db.sqlite"
        assert config["storage"]["public_base_url"] == "https://cdn.example.com"

    def test_yaml_kept_without_env(self, monkeypatch):
        monkeypatch.delenv("VOICEHUB_DB_PATH", raising=False)
        config = {"database": {"path": "yaml.db"}}

        apply_storage_defaults(config)

        assert config["database"]["path"] == "yaml.db"


class TestApplyConversationDefaults:
    def test_builtin_defaults(self, monkeypatch):
        monkeypatch.delenv("VOICEHUB_DEFAULT_LLM_PROVIDER", raising=False)
        monkeypatch.delenv("VOICEHUB_DEFAULT_LLM_MODEL", raising=False)
        config = {}

        apply_conversation_defaults(config)

        assert config["defaults"]["llm_provider"] == "openai"
        assert config["defaults"]["llm_model"] == "gpt-4o"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("VOICEHUB_DEFAULT_LLM_PROVIDER", "anthropic")
        monkeypatch.setenv("VOICEHUB_DEFAULT_LLM_MODEL", "claude-3-haiku-20240307")
        config = {"defaults": {"llm_provider": "openai"}}

        apply_conversation_defaults(config)

        assert config["defaults"]["llm_provider"] == "anthropic"
        assert config["defaults"]["llm_model"] == "claude-3-haiku-20240307"


class TestApplyLoggingDefaults:
    def test_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        config = {}

        apply_logging_defaults(config)

        assert config["logging"]["level"] == "debug"

    def test_yaml_level_wins(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        config = {"logging": {"level": "warning"}}

        apply_logging_defaults(config)

        assert config["logging"]["level"] == "warning"
