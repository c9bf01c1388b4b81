"""Counting for OpenAI chat-completions requests and SDK response objects.

Requests are taken as plain JSON bodies; responses as the ``openai`` SDK's
``ChatCompletion`` / ``ChatCompletionChunk`` models (``pip install tokmeter[openai]``).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .calculator import TokenCalculator
from .tokenizer import Conversation, ImagePart, Message, Part, TextPart, ToolSpec

if TYPE_CHECKING:
    from openai.types.chat import ChatCompletion, ChatCompletionChunk


def _part_from_mapping(part: Mapping[str, Any]) -> Part:
    if part.get("type") == "image_url":
        image = part.get("image_url") or {}
        if isinstance(image, str):
            return ImagePart(url=image)
        return ImagePart(url=image.get("url", ""), detail=image.get("detail") or "auto")
    return TextPart(text=part.get("text") or "")


def message_from_mapping(message: Mapping[str, Any]) -> Message:
    content = message.get("content")
    if content is None:
        content = ""
    elif not isinstance(content, str):
        content = [_part_from_mapping(p) for p in content]
    return Message(role=message.get("role") or "user", content=content, name=message.get("name"))


def tool_from_mapping(tool: Mapping[str, Any]) -> ToolSpec:
    """Accepts both {"type": "function", "function": {...}} and a bare function spec."""
    function = tool.get("function", tool)
    return ToolSpec(
        name=function.get("name", ""),
        description=function.get("description"),
        parameters=function.get("parameters"),
    )


def conversation_from_request(request: Mapping[str, Any]) -> Conversation:
    return Conversation(
        model=request.get("model", ""),
        messages=[message_from_mapping(m) for m in request.get("messages", [])],
        tools=[tool_from_mapping(t) for t in request.get("tools") or []],
    )


def count_request(
    calculator: TokenCalculator, request: Mapping[str, Any], model: str | None = None
) -> int:
    return calculator.request_tokens(conversation_from_request(request), model)


def count_completion(
    calculator: TokenCalculator, completion: "ChatCompletion", model: str | None = None
) -> int:
    texts = [choice.message.content or "" for choice in completion.choices]
    return calculator.response_tokens(texts, model or completion.model)


def count_chunk(
    calculator: TokenCalculator, chunk: "ChatCompletionChunk", model: str | None = None
) -> int:
    texts = [choice.delta.content or "" for choice in chunk.choices]
    return calculator.response_tokens(texts, model or chunk.model)
