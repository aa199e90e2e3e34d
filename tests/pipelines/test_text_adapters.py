import asyncio

import pytest

from voicehub.config import AppConfig
from voicehub.errors import AdapterError, ConfigurationError
from voicehub.pipelines.anthropic import AnthropicLLMAdapter, split_system_messages
from voicehub.pipelines.base import EMPTY_COMPLETION, LLMMessage, LLMRequest, Usage
from voicehub.pipelines.openai import OpenAILLMAdapter
from voicehub.pipelines.openai_compatible import MistralLLMAdapter, OpenRouterLLMAdapter


def _adapter(cls, session, app_config=None):
    app_config = app_config or AppConfig()
    provider_config = getattr(app_config.providers, cls.config_section)
    return cls(f"{cls.provider_id}_text", app_config, provider_config, session_factory=lambda: session)


def _request(**kwargs):
    kwargs.setdefault("messages", [LLMMessage("system", "Be brief."), LLMMessage("user", "Hello")])
    return LLMRequest(**kwargs)


def _completion(content="Hi there", prompt=5, completion=7, model="gpt-4o"):
    return {
        "model": model,
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": prompt, "completion_tokens": completion},
    }


class TestUsage:
    def test_total_is_sum_of_parts(self):
        usage = Usage(prompt_tokens=12, completion_tokens=30)
        assert usage.total_tokens == 42

    def test_missing_counts_default_to_zero(self):
        assert Usage(prompt_tokens=None, completion_tokens=3).total_tokens == 3


class TestOpenAILLMAdapter:
    @pytest.mark.asyncio
    async def test_uses_request_key_and_normalizes_response(self, make_session):
        session = make_session(_completion())
        adapter = _adapter(OpenAILLMAdapter, session)

        result = await adapter.generate(_request(api_key="sk-user", model="gpt-4o", temperature=0.3, max_tokens=50))

        assert result.content == "Hi there"
        assert result.provider == "openai"
        assert result.usage.total_tokens == result.usage.prompt_tokens + result.usage.completion_tokens == 12
        req = session.last
        assert req["url"] == "https://api.openai.com/v1/chat/completions"
        assert req["headers"]["Authorization"] == "Bearer sk-user"
        assert req["json"]["temperature"] == 0.3
        assert req["json"]["max_tokens"] == 50
        assert req["json"]["messages"][0] == {"role": "system", "content": "Be brief."}

    @pytest.mark.asyncio
    async def test_falls_back_to_deployment_key(self, make_session):
        session = make_session(_completion())
        config = AppConfig(providers={"openai": {"api_key": "sk-deploy"}})
        adapter = _adapter(OpenAILLMAdapter, session, config)

        await adapter.generate(_request())

        assert session.last["headers"]["Authorization"] == "Bearer sk-deploy"

    @pytest.mark.asyncio
    async def test_no_key_anywhere_is_configuration_error(self, make_session):
        session = make_session(_completion())
        adapter = _adapter(OpenAILLMAdapter, session)

        with pytest.raises(ConfigurationError):
            await adapter.generate(_request())
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_zero_temperature_is_sent(self, make_session):
        session = make_session(_completion())
        adapter = _adapter(OpenAILLMAdapter, session)

        await adapter.generate(_request(api_key="k", temperature=0.0))

        assert session.last["json"]["temperature"] == 0.0

    @pytest.mark.asyncio
    async def test_defaults_for_temperature_and_max_tokens(self, make_session):
        session = make_session(_completion())
        adapter = _adapter(OpenAILLMAdapter, session)

        await adapter.generate(_request(api_key="k"))

        assert session.last["json"]["temperature"] == 0.7
        assert session.last["json"]["max_tokens"] == 2000

    @pytest.mark.asyncio
    async def test_empty_choices_yield_placeholder(self, make_session):
        session = make_session({"choices": []})
        adapter = _adapter(OpenAILLMAdapter, session)

        result = await adapter.generate(_request(api_key="k", model="gpt-4"))

        assert result.content == EMPTY_COMPLETION == "No response generated"
        assert result.model == "gpt-4"
        assert result.usage is None

    @pytest.mark.asyncio
    async def test_error_status_raises_with_raw_body(self, make_session):
        session = make_session(('{"error": "bad key"}', 401))
        adapter = _adapter(OpenAILLMAdapter, session)

        with pytest.raises(AdapterError) as excinfo:
            await adapter.generate(_request(api_key="k"))

        assert excinfo.value.status == 401
        assert "bad key" in str(excinfo.value)
        assert str(excinfo.value).startswith("OpenAI API error (401)")

    @pytest.mark.asyncio
    async def test_timeout_becomes_adapter_error(self, make_session):
        session = make_session(asyncio.TimeoutError())
        adapter = _adapter(OpenAILLMAdapter, session)

        with pytest.raises(AdapterError):
            await adapter.generate(_request(api_key="k"))


class TestOpenRouterLLMAdapter:
    @pytest.mark.asyncio
    async def test_requires_user_key(self, make_session):
        session = make_session(_completion())
        adapter = _adapter(OpenRouterLLMAdapter, session)

        with pytest.raises(ConfigurationError) as excinfo:
            await adapter.generate(_request())

        assert "OpenRouter" in str(excinfo.value)
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_sends_referer_and_default_model(self, make_session):
        session = make_session(_completion(model=""))
        adapter = _adapter(OpenRouterLLMAdapter, session)

        result = await adapter.generate(_request(api_key="or-key"))

        req = session.last
        assert req["url"] == "https://openrouter.ai/api/v1/chat/completions"
        assert req["headers"]["HTTP-Referer"] == "http://localhost:8000"
        assert req["json"]["model"] == "mistralai/mistral-7b-instruct"
        assert result.model == "mistralai/mistral-7b-instruct"
        assert result.provider == "openrouter"

    @pytest.mark.asyncio
    async def test_extra_headers_from_config(self, make_session):
        session = make_session(_completion())
        config = AppConfig(extra_headers={"openrouter": {"X-Title": "VoiceHub"}})
        adapter = _adapter(OpenRouterLLMAdapter, session, config)

        await adapter.generate(_request(api_key="or-key"))

        assert session.last["headers"]["X-Title"] == "VoiceHub"


class TestMistralLLMAdapter:
    @pytest.mark.asyncio
    async def test_missing_key_message_names_provider(self, make_session):
        adapter = _adapter(MistralLLMAdapter, make_session(_completion()))

        with pytest.raises(ConfigurationError) as excinfo:
            await adapter.generate(_request())

        assert str(excinfo.value) == "No API key configured for Mistral AI"

    @pytest.mark.asyncio
    async def test_posts_to_mistral_endpoint(self, make_session):
        session = make_session(_completion(content="Bonjour", prompt=3, completion=4))
        adapter = _adapter(MistralLLMAdapter, session)

        result = await adapter.generate(_request(api_key="m-key", model="mistral-large-latest"))

        assert session.last["url"] == "https://api.mistral.ai/v1/chat/completions"
        assert session.last["json"]["model"] == "mistral-large-latest"
        assert result.content == "Bonjour"
        assert result.usage.total_tokens == 7


class TestSplitSystemMessages:
    def test_joins_system_messages_and_keeps_turn_order(self):
        system, turns = split_system_messages(
            [
                LLMMessage("system", "One."),
                LLMMessage("user", "Hi"),
                LLMMessage("system", "Two."),
                LLMMessage("assistant", "Hello"),
            ]
        )
        assert system == "One.\n\nTwo."
        assert turns == [{"role": "user", "content": "Hi"}, {"role": "assistant", "content": "Hello"}]


class TestAnthropicLLMAdapter:
    @pytest.mark.asyncio
    async def test_messages_api_shape_and_usage(self, make_session):
        session = make_session(
            {
                "model": "claude-3-opus-20240229",
                "content": [{"type": "text", "text": "Hello "}, {"type": "text", "text": "there"}],
                "usage": {"input_tokens": 10, "output_tokens": 4},
            }
        )
        adapter = _adapter(AnthropicLLMAdapter, session)

        result = await adapter.generate(_request(api_key="ant-key", model="claude-3-opus-20240229", temperature=1.2))

        req = session.last
        assert req["url"] == "https://api.anthropic.com/v1/messages"
        assert req["headers"]["x-api-key"] == "ant-key"
        assert req["headers"]["anthropic-version"] == "2023-06-01"
        assert req["json"]["system"] == "Be brief."
        assert req["json"]["messages"] == [{"role": "user", "content": "Hello"}]
        assert req["json"]["temperature"] == 1.2
        assert result.content == "Hello there"
        assert result.usage.prompt_tokens == 10
        assert result.usage.completion_tokens == 4
        assert result.usage.total_tokens == 14

    @pytest.mark.asyncio
    async def test_empty_content_yields_placeholder(self, make_session):
        adapter = _adapter(AnthropicLLMAdapter, make_session({"content": []}))

        result = await adapter.generate(_request(api_key="ant-key"))

        assert result.content == EMPTY_COMPLETION

    @pytest.mark.asyncio
    async def test_vendor_error_text_is_surfaced(self, make_session):
        adapter = _adapter(AnthropicLLMAdapter, make_session(("overloaded_error", 529)))

        with pytest.raises(AdapterError) as excinfo:
            await adapter.generate(_request(api_key="ant-key"))

        assert excinfo.value.provider == "Anthropic Claude"
        assert excinfo.value.raw_message == "overloaded_error"
