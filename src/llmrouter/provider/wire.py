"""
Typed wire responses, one per provider family, and the single
normalization step that maps each of them to content plus Usage.

Missing, malformed or negative counts read as 0 and missing text as
"", so a sparse payload never crashes the caller. A payload that is
not a JSON object at all is rejected with ValueError.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Union

from llmrouter.models import Usage


def _int(value: "Any") -> "int":
    # token counts are never negative; nan and inf read as 0 too
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    try:
        count = int(value)
    except (OverflowError, ValueError):
        return 0
    return max(count, 0)


def _sub(data: "Mapping[str, Any]", key: "str") -> "Mapping[str, Any]":
    value = data.get(key)
    return value if isinstance(value, Mapping) else {}


def _mapping(data: "Any", family: "str") -> "Mapping[str, Any]":
    if not isinstance(data, Mapping):
        raise ValueError(f"unexpected {family} payload: {type(data).__name__}")
    return data


@dataclass(frozen=True, slots=True)
class OllamaGenerateResponse:
    response: "str" = ""
    prompt_eval_count: "int" = 0
    eval_count: "int" = 0

    @classmethod
    def from_json(cls, data: "Any") -> "OllamaGenerateResponse":
        data = _mapping(data, "ollama")
        return cls(
            response=str(data.get("response") or ""),
            prompt_eval_count=_int(data.get("prompt_eval_count")),
            eval_count=_int(data.get("eval_count")),
        )


@dataclass(frozen=True, slots=True)
class OpenAIChatResponse:
    content: "str" = ""
    prompt_tokens: "int" = 0
    completion_tokens: "int" = 0
    total_tokens: "int" = 0

    @classmethod
    def from_json(cls, data: "Any") -> "OpenAIChatResponse":
        data = _mapping(data, "openai")
        choices = data.get("choices") or []
        first = choices[0] if isinstance(choices, list) and choices else {}
        message = _sub(first, "message") if isinstance(first, Mapping) else {}
        usage = _sub(data, "usage")
        return cls(
            content=str(message.get("content") or ""),
            prompt_tokens=_int(usage.get("prompt_tokens")),
            completion_tokens=_int(usage.get("completion_tokens")),
            total_tokens=_int(usage.get("total_tokens")),
        )


@dataclass(frozen=True, slots=True)
class AnthropicMessageResponse:
    text: "str" = ""
    input_tokens: "int" = 0
    output_tokens: "int" = 0

    @classmethod
    def from_json(cls, data: "Any") -> "AnthropicMessageResponse":
        data = _mapping(data, "anthropic")
        # content is a list of blocks, only text blocks carry output
        parts = [
            str(block.get("text") or "")
            for block in data.get("content") or []
            if isinstance(block, Mapping) and block.get("type", "text") == "text"
        ]
        usage = _sub(data, "usage")
        return cls(
            text="".join(parts),
            input_tokens=_int(usage.get("input_tokens")),
            output_tokens=_int(usage.get("output_tokens")),
        )


WireResponse = Union[
    OllamaGenerateResponse, OpenAIChatResponse, AnthropicMessageResponse
]


def normalize(response: "WireResponse") -> "tuple[str, Usage]":
    """
    maps a family-specific response to (content, usage).
    """
    if isinstance(response, OllamaGenerateResponse):
        content = response.response
        prompt, completion, total = (
            response.prompt_eval_count,
            response.eval_count,
            0,
        )
    elif isinstance(response, OpenAIChatResponse):
        content = response.content
        prompt, completion, total = (
            response.prompt_tokens,
            response.completion_tokens,
            response.total_tokens,
        )
    elif isinstance(response, AnthropicMessageResponse):
        content = response.text
        prompt, completion, total = (
            response.input_tokens,
            response.output_tokens,
            0,
        )
    else:
        raise TypeError(f"unsupported wire response: {type(response).__name__}")

    return content, Usage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=total or prompt + completion,
    )
