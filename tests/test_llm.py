"""Tests for famcal.core.llm — provider routing and forced tool calls."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from famcal.core import llm

SCHEMA = {"type": "object", "properties": {"intent": {"type": "string"}}}
MESSAGES = [{"role": "user", "content": "Hallo"}]


def _anthropic_response(blocks):
    response = MagicMock()
    response.content = blocks
    response.usage = MagicMock(input_tokens=10, output_tokens=5, cache_read_input_tokens=0)
    return response


def _tool_block(name, payload):
    block = MagicMock()
    block.type = "tool_use"
    block.name = name
    block.input = payload
    return block


@pytest.fixture(autouse=True)
def reset_provider():
    """Each test selects its own provider."""
    llm._provider_fn = None
    yield
    llm._provider_fn = None


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


class TestSelectProvider:
    def test_default_model_per_provider(self):
        with patch("famcal.config.settings") as settings:
            settings.LLM_PROVIDER = "openai"
            settings.LLM_MODEL = ""
            settings.LLM_API_KEY = "k"
            fn, model, key = llm._select_provider()
        assert fn is llm._complete_openai
        assert model == "gpt-4o-mini"
        assert key == "k"

    def test_explicit_model_wins(self):
        with patch("famcal.config.settings") as settings:
            settings.LLM_PROVIDER = "anthropic"
            settings.LLM_MODEL = "claude-custom"
            settings.LLM_API_KEY = "k"
            _, model, _ = llm._select_provider()
        assert model == "claude-custom"

    def test_unknown_provider(self):
        with patch("famcal.config.settings") as settings:
            settings.LLM_PROVIDER = "mistral"
            with pytest.raises(ValueError, match="Unknown LLM_PROVIDER"):
                llm._select_provider()

    @pytest.mark.asyncio
    async def test_provider_selected_once(self):
        provider = AsyncMock(return_value={"intent": "help"})
        with patch.object(llm, "_select_provider", return_value=(provider, "m", "k")) as select:
            await llm.complete_structured("sys", MESSAGES, "tool", "desc", SCHEMA)
            await llm.complete_structured("sys", MESSAGES, "tool", "desc", SCHEMA)

        select.assert_called_once()
        assert provider.await_count == 2
        args = provider.call_args.args
        assert args[:5] == ("k", "m", "sys", MESSAGES, "tool")


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------


class TestAnthropic:
    @pytest.mark.asyncio
    async def test_returns_tool_input(self):
        response = _anthropic_response([_tool_block("parse", {"intent": "help"})])
        with patch("anthropic.AsyncAnthropic") as client_cls:
            client_cls.return_value.messages.create = AsyncMock(return_value=response)
            result = await llm._complete_anthropic(
                "key", "model", "sys", MESSAGES, "parse", "desc", SCHEMA, 512,
            )

        assert result == {"intent": "help"}
        kwargs = client_cls.return_value.messages.create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "tool", "name": "parse"}
        assert kwargs["tools"][0]["input_schema"] == SCHEMA
        assert kwargs["system"][0]["cache_control"] == {"type": "ephemeral"}
        assert kwargs["max_tokens"] == 512

    @pytest.mark.asyncio
    async def test_no_tool_call(self):
        text_block = MagicMock()
        text_block.type = "text"
        response = _anthropic_response([text_block])
        with patch("anthropic.AsyncAnthropic") as client_cls:
            client_cls.return_value.messages.create = AsyncMock(return_value=response)
            result = await llm._complete_anthropic(
                "key", "model", "sys", MESSAGES, "parse", "desc", SCHEMA, 512,
            )
        assert result is None


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------


class TestOpenAI:
    @pytest.mark.asyncio
    async def test_parses_function_arguments(self):
        call = MagicMock()
        call.function.name = "parse"
        call.function.arguments = '{"intent": "greeting"}'
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.tool_calls = [call]

        with patch("openai.AsyncOpenAI") as client_cls:
            client_cls.return_value.chat.completions.create = AsyncMock(return_value=response)
            result = await llm._complete_openai(
                "key", "model", "sys", MESSAGES, "parse", "desc", SCHEMA, 512,
            )

        assert result == {"intent": "greeting"}
        kwargs = client_cls.return_value.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["tool_choice"] == {"type": "function", "function": {"name": "parse"}}

    @pytest.mark.asyncio
    async def test_no_tool_calls(self):
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.tool_calls = None

        with patch("openai.AsyncOpenAI") as client_cls:
            client_cls.return_value.chat.completions.create = AsyncMock(return_value=response)
            result = await llm._complete_openai(
                "key", "model", "sys", MESSAGES, "parse", "desc", SCHEMA, 512,
            )
        assert result is None


class TestToPlain:
    def test_nested_mappings_and_lists(self):
        value = {"a": {"b": [1, 2]}, "c": "x"}
        assert llm._to_plain(value) == {"a": {"b": [1, 2]}, "c": "x"}
