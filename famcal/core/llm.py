"""
Family Calendar Assistant — LLM Provider Abstraction.

Single public function `complete_structured()` that routes to the configured
provider and forces the model to answer through exactly one tool/function
call. Provider is selected at startup via the LLM_PROVIDER env var.
Supports: anthropic (default), openai, gemini, cohere.
"""

from __future__ import annotations

import json
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

# (api_key, model, system, messages, tool_name, tool_description, schema, max_tokens)
_ProviderFn = Callable[[str, str, str, list[dict], str, str, dict, int], Awaitable["dict | None"]]


# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _complete_anthropic(
    api_key: str, model: str, system: str, messages: list[dict],
    tool_name: str, tool_description: str, schema: dict, max_tokens: int,
) -> dict | None:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        system=[{"type": "text", "text": system, "cache_control": {"type": "ephemeral"}}],
        messages=messages,
        tools=[{"name": tool_name, "description": tool_description, "input_schema": schema}],
        tool_choice={"type": "tool", "name": tool_name},
    )
    usage = getattr(response, "usage", None)
    if usage is not None:
        logger.debug(
            "Anthropic usage: in=%s out=%s cache_read=%s",
            usage.input_tokens, usage.output_tokens,
            getattr(usage, "cache_read_input_tokens", 0),
        )
    for block in response.content:
        if block.type == "tool_use" and block.name == tool_name:
            return dict(block.input)
    return None


async def _complete_openai(
    api_key: str, model: str, system: str, messages: list[dict],
    tool_name: str, tool_description: str, schema: dict, max_tokens: int,
) -> dict | None:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        messages=[{"role": "system", "content": system}, *messages],
        tools=[{
            "type": "function",
            "function": {"name": tool_name, "description": tool_description, "parameters": schema},
        }],
        tool_choice={"type": "function", "function": {"name": tool_name}},
    )
    tool_calls = response.choices[0].message.tool_calls or []
    for call in tool_calls:
        if call.function.name == tool_name:
            return json.loads(call.function.arguments)
    return None


def _to_plain(value):
    """Convert Gemini's proto map/list wrappers into plain dicts and lists."""
    if hasattr(value, "items"):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)) or type(value).__name__ == "RepeatedComposite":
        return [_to_plain(v) for v in value]
    return value


async def _complete_gemini(
    api_key: str, model: str, system: str, messages: list[dict],
    tool_name: str, tool_description: str, schema: dict, max_tokens: int,
) -> dict | None:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(
        model_name=model,
        system_instruction=system,
        tools=[{"function_declarations": [
            {"name": tool_name, "description": tool_description, "parameters": schema},
        ]}],
        tool_config={"function_calling_config": {
            "mode": "ANY", "allowed_function_names": [tool_name],
        }},
    )
    contents = [
        {"role": "model" if m["role"] == "assistant" else "user", "parts": [m["content"]]}
        for m in messages
    ]
    response = await gm.generate_content_async(
        contents,
        generation_config=genai.types.GenerationConfig(max_output_tokens=max_tokens),
    )
    for part in response.candidates[0].content.parts:
        call = getattr(part, "function_call", None)
        if call and call.name == tool_name:
            return _to_plain(call.args)
    return None


async def _complete_cohere(
    api_key: str, model: str, system: str, messages: list[dict],
    tool_name: str, tool_description: str, schema: dict, max_tokens: int,
) -> dict | None:
    import cohere

    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=max_tokens,
        messages=[{"role": "system", "content": system}, *messages],
        tools=[{
            "type": "function",
            "function": {"name": tool_name, "description": tool_description, "parameters": schema},
        }],
        tool_choice="REQUIRED",
    )
    for call in response.message.tool_calls or []:
        if call.function.name == tool_name:
            return json.loads(call.function.arguments)
    return None


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "anthropic": (_complete_anthropic, "claude-sonnet-4-20250514"),
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "gemini":    (_complete_gemini,    "gemini-2.0-flash"),
    "cohere":    (_complete_cohere,    "command-a-03-2025"),
}


def _select_provider() -> tuple[_ProviderFn, str, str]:
    """Read settings and return (provider_fn, model, api_key)."""
    from famcal.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )

    fn, default_model = _PROVIDERS[provider_name]
    model = settings.LLM_MODEL or default_model
    api_key = settings.LLM_API_KEY

    logger.info("LLM provider: %s, model: %s", provider_name, model)
    return fn, model, api_key


# Lazy singleton, populated on first call to complete_structured()
_provider_fn: _ProviderFn | None = None
_model: str = ""
_api_key: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete_structured(
    system: str,
    messages: list[dict],
    tool_name: str,
    tool_description: str,
    schema: dict,
    max_tokens: int = 1024,
) -> dict | None:
    """Ask the configured provider to answer by calling *tool_name*.

    *messages* is a list of ``{"role": "user" | "assistant", "content": str}``.
    Returns the tool arguments as a dict, or None when the model produced
    no matching tool call. Raises on API errors; callers should handle
    exceptions.
    """
    global _provider_fn, _model, _api_key

    if _provider_fn is None:
        _provider_fn, _model, _api_key = _select_provider()

    return await _provider_fn(
        _api_key, _model, system, messages, tool_name, tool_description, schema, max_tokens,
    )
