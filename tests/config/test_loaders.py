"""
Unit tests for config.loaders module and the load_config pipeline.

Tests cover:
- Path resolution (relative vs absolute)
- YAML loading with environment variable expansion
- Error handling (missing files, invalid YAML)
- End-to-end load_config with environment-only secrets
"""

import os

import pytest
import yaml

from voicehub.config import load_config
from voicehub.config.loaders import load_yaml_with_env_expansion, resolve_config_path


class TestResolveConfigPath:
    """Tests for resolve_config_path function."""

    def test_absolute_path_unchanged(self):
        """Absolute paths should be returned unchanged."""
        assert resolve_config_path("/etc/voicehub/voicehub.yaml") == "/etc/voicehub/voicehub.yaml"

    def test_relative_path_resolved(self):
        """Relative paths should be resolved relative to project root."""
        result = resolve_config_path("config/voicehub.yaml")
        assert os.path.isabs(result)
        assert result.endswith(os.path.join("config", "voicehub.yaml"))


class TestLoadYamlWithEnvExpansion:
    """Tests for load_yaml_with_env_expansion function."""

    def test_expands_env_vars(self, tmp_path, monkeypatch):
        monkeypatch.setenv("VH_MODEL", "gpt-4-turbo")
        path = tmp_path / "voicehub.yaml"
        path.write_text("defaults:\n  llm_model: ${VH_MODEL}\n")

        data = load_yaml_with_env_expansion(str(path))

        assert data == {"defaults": {"llm_model": "gpt-4-turbo"}}

    def test_fallback_used_when_unset(self, tmp_path, monkeypatch):
        monkeypatch.delenv("VH_UNSET_DIR", raising=False)
        monkeypatch.setenv("VH_SET_DIR", "/srv/objects")
        path = tmp_path / "voicehub.yaml"
        path.write_text(
            "storage:\n"
            "  base_dir: ${VH_SET_DIR:-data/objects}\n"
            "database:\n"
            "  path: ${VH_UNSET_DIR:-data/voicehub.db}\n"
        )

        data = load_yaml_with_env_expansion(str(path))

        assert data["storage"]["base_dir"] == "/srv/objects"
        assert data["database"]["path"] == "data/voicehub.db"

    def test_non_mapping_root_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(yaml.YAMLError):
            load_yaml_with_env_expansion(str(path))

    def test_empty_file_returns_empty_dict(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_with_env_expansion(str(path)) == {}

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_with_env_expansion(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("defaults: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_yaml_with_env_expansion(str(path))


class TestLoadConfig:
    """End-to-end configuration loading."""

    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch):
        for var in (
            "OPENAI_API_KEY",
            "OPENAI_ORGANIZATION",
            "VOICEHUB_CREDENTIAL_KEY",
            "VOICEHUB_DB_PATH",
            "VOICEHUB_STORAGE_DIR",
            "VOICEHUB_PUBLIC_BASE_URL",
            "VOICEHUB_DEFAULT_LLM_PROVIDER",
            "VOICEHUB_DEFAULT_LLM_MODEL",
        ):
            monkeypatch.delenv(var, raising=False)

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.yaml"))

        assert config.defaults.llm_provider == "openai"
        assert config.defaults.temperature == 70
        assert config.capture.silence_threshold_ms == 1500
        assert config.voice_call.speech_level == 30
        assert config.providers.openai.api_key is None

    def test_yaml_values_and_env_secrets(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("VOICEHUB_DB_PATH", str(tmp_path / "hub.db"))
        path = tmp_path / "voicehub.yaml"
        path.write_text(
            "providers:\n"
            "  openai:\n"
            "    api_key: sk-yaml-should-be-ignored\n"
            "    chat_model: gpt-4\n"
            "capture:\n"
            "  vad_sensitivity: 40\n"
        )

        config = load_config(str(path))

        assert config.providers.openai.api_key == "sk-env"
        assert config.providers.openai.chat_model == "gpt-4"
        assert config.capture.vad_sensitivity == 40
        assert config.database.path == str(tmp_path / "hub.db")
