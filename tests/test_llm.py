"""Tests for the shared LLM client (specforge/services/llm.py)."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import BaseModel

from specforge.services import llm


class SampleModel(BaseModel):
    headline: str
    steps: list[str] = []


class TestProviderDetection:
    """No keys are configured in tests, so the provider resolves to 'none'."""

    def test_provider_is_none(self):
        client = llm.LLMClient()
        assert client.provider == "none"
        assert client.available() is False

    def test_shared_client(self):
        assert llm.get_llm_client() is llm.get_llm_client()

    async def test_generate_json_raises_without_provider(self):
        with pytest.raises(RuntimeError, match="unavailable"):
            await llm.LLMClient().generate_json(system="s", user="u", response_model=SampleModel)


class TestModelTiers:
    def test_anthropic_defaults(self):
        client = llm.LLMClient()
        client.provider = "anthropic"
        assert client.model_for_tier("fast") == "claude-haiku-4-5"
        assert client.model_for_tier("standard") == "claude-sonnet-4-5"

    def test_openai_defaults(self):
        client = llm.LLMClient()
        client.provider = "openai"
        assert client.model_for_tier("fast") == "gpt-4o-mini"
        assert client.model_for_tier("bogus") == "gpt-4o"

    def test_override_from_config(self):
        client = llm.LLMClient()
        client.provider = "anthropic"
        with patch.object(llm, "LLM_MODEL_FAST", "claude-custom"):
            assert client.model_for_tier("fast") == "claude-custom"


class TestJsonHelpers:
    def test_strips_json_fence(self):
        assert llm._strip_json('```json\n{"key": "value"}\n```') == '{"key": "value"}'

    def test_strips_surrounding_prose(self):
        assert llm._strip_json('Here you go: {"key": 1} hope that helps') == '{"key": 1}'

    def test_no_fence_unchanged(self):
        assert llm._strip_json('{"key": "value"}') == '{"key": "value"}'

    def test_coerce_string_to_list(self):
        coerced = llm._coerce_payload({"headline": "Plan", "steps": "- one\n- two"}, SampleModel)
        assert coerced == {"headline": "Plan", "steps": ["one", "two"]}

    def test_coerce_list_to_string(self):
        coerced = llm._coerce_payload({"headline": ["Big", "plan"], "steps": []}, SampleModel)
        assert coerced["headline"] == "Big plan"


def _anthropic_client(text):
    block = MagicMock()
    block.text = text
    response = MagicMock()
    response.content = [block]
    anthropic = AsyncMock()
    anthropic.messages.create = AsyncMock(return_value=response)

    client = llm.LLMClient()
    client.provider = "anthropic"
    client._anthropic = anthropic
    return client, anthropic


class TestAnthropicPath:
    async def test_parses_response(self):
        client, anthropic = _anthropic_client('```json\n{"headline": "Go", "steps": ["a"]}\n```')
        result = await client.generate_json(system="Be brief.", user="plan", response_model=SampleModel)

        assert result == SampleModel(headline="Go", steps=["a"])
        kwargs = anthropic.messages.create.call_args.kwargs
        assert kwargs["system"] == "Be brief."
        assert kwargs["model"] == "claude-sonnet-4-5"
        assert kwargs["messages"] == [{"role": "user", "content": "plan"}]

    async def test_repairs_shape_drift(self):
        client, _ = _anthropic_client('{"headline": "Go", "steps": "- first\\n- second"}')
        result = await client.generate_json(system="s", user="u", response_model=SampleModel)
        assert result.steps == ["first", "second"]


class TestOpenAIPath:
    async def test_uses_parse(self):
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.parsed = SampleModel(headline="From OpenAI")
        openai = AsyncMock()
        openai.beta.chat.completions.parse = AsyncMock(return_value=response)

        client = llm.LLMClient()
        client.provider = "openai"
        client._openai = openai
        result = await client.generate_json(system="s", user="u", response_model=SampleModel, tier="fast")

        assert result.headline == "From OpenAI"
        kwargs = openai.beta.chat.completions.parse.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["response_format"] is SampleModel

    async def test_empty_parse_raises(self):
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.parsed = None
        openai = AsyncMock()
        openai.beta.chat.completions.parse = AsyncMock(return_value=response)

        client = llm.LLMClient()
        client.provider = "openai"
        client._openai = openai
        with pytest.raises(RuntimeError, match="no data"):
            await client.generate_json(system="s", user="u", response_model=SampleModel)
