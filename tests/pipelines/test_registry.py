import pytest

from voicehub.config import AppConfig
from voicehub.errors import UnsupportedProviderError
from voicehub.pipelines.base import Capability, LLMMessage, LLMRequest
from voicehub.pipelines.registry import ProviderRegistry


@pytest.fixture
def registry():
    return ProviderRegistry(AppConfig())


class TestProviderRegistry:
    def test_catalog_per_capability(self, registry):
        text = {p.id for p in registry.list_providers(Capability.TEXT)}
        stt = {p.id for p in registry.list_providers(Capability.STT)}
        tts = {p.id for p in registry.list_providers(Capability.TTS)}

        assert text == {"openai", "openrouter", "mistral", "anthropic"}
        assert stt == {"whisper", "deepgram"}
        assert tts == {"elevenlabs", "hume", "openai"}

    def test_builtin_channels_do_not_require_key(self, registry):
        info = {p.id: p for p in registry.list_providers(Capability.TEXT)}
        assert info["openai"].requires_api_key is False
        assert info["mistral"].requires_api_key is True
        assert "mistral-small-latest" in info["mistral"].models

    def test_openrouter_models_are_vendor_prefixed(self, registry):
        info = {p.id: p for p in registry.list_providers(Capability.TEXT)}
        assert all("/" in model for model in info["openrouter"].models)
        assert "mistralai/mistral-large-latest" in info["openrouter"].models

    def test_lookup_is_case_insensitive(self, registry):
        assert registry.canonical_id(Capability.TEXT, "OpenRouter") == "openrouter"

    def test_aliases_resolve(self, registry):
        assert registry.canonical_id(Capability.TEXT, "claude") == "anthropic"
        assert registry.canonical_id(Capability.STT, "openai") == "whisper"
        # The alias is per capability: "openai" TTS is its own adapter.
        assert registry.canonical_id(Capability.TTS, "openai") == "openai"

    def test_unknown_provider_raises(self, registry):
        with pytest.raises(UnsupportedProviderError) as excinfo:
            registry.resolve_adapter(Capability.TEXT, "cohere")
        assert excinfo.value.provider_id == "cohere"
        assert excinfo.value.capability == "text"

    def test_provider_registered_for_other_capability_is_unsupported(self, registry):
        with pytest.raises(UnsupportedProviderError):
            registry.get_component(Capability.STT, "elevenlabs")

    def test_display_name_falls_back_to_id(self, registry):
        assert registry.display_name(Capability.TEXT, "claude") == "Anthropic Claude"
        assert registry.display_name(Capability.TEXT, "unknown") == "unknown"

    @pytest.mark.asyncio
    async def test_invoke_llm_dispatches_through_adapter(self, make_session):
        session = make_session({"choices": [{"message": {"content": "ok"}}]})
        registry = ProviderRegistry(AppConfig(), session_factory=lambda: session)

        response = await registry.invoke_llm(
            "mistral", LLMRequest(messages=[LLMMessage("user", "hi")], api_key="m-key")
        )

        assert response.content == "ok"
        assert response.provider == "mistral"
        assert session.last["url"] == "https://api.mistral.ai/v1/chat/completions"

    @pytest.mark.asyncio
    async def test_stop_closes_sessions(self, make_session):
        session = make_session({"choices": [{"message": {"content": "ok"}}]})
        registry = ProviderRegistry(AppConfig(), session_factory=lambda: session)
        await registry.invoke_llm("mistral", LLMRequest(messages=[LLMMessage("user", "hi")], api_key="m-key"))

        await registry.stop()

        assert session.closed is True
