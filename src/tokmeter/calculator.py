from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from typing import Any

from .config import AccountingConfig
from .encoding import EncodingRegistry
from .errors import ImageDecodeError, InvalidToolSpecError, preview_source
from .image import ImageResolver, image_cost, normalize_detail
from .tokenizer import (
    Conversation,
    ImagePart,
    Message,
    TextPart,
    TokenCounter,
    ToolSpec,
)

logger = logging.getLogger(__name__)

TOKENS_PER_MESSAGE = 3
TOKENS_PER_NAME = 1
LEGACY_TOKENS_PER_MESSAGE = 4
LEGACY_TOKENS_PER_NAME = -1
# every reply is primed with <|start|>assistant<|message|>
REPLY_PRIMING_TOKENS = 3
TOKENS_PER_TOOL = 8


class TokenCalculator:
    """Counts prompt and completion tokens the way the upstream provider bills them.

    Usage:
        calc = TokenCalculator(resolver=my_image_resolver)
        prompt = calc.request_tokens(conversation)
        completion = calc.response_tokens(choices, conversation.model)

    Only the registry cache is shared state; one calculator serves all
    concurrent requests.
    """

    def __init__(
        self,
        registry: EncodingRegistry | None = None,
        resolver: ImageResolver | None = None,
        config: AccountingConfig | None = None,
    ) -> None:
        self._config = config or AccountingConfig()
        self._registry = registry if registry is not None else EncodingRegistry(self._config)
        self._resolver = resolver

    @property
    def registry(self) -> EncodingRegistry:
        return self._registry

    def counter(self, model: str) -> TokenCounter:
        encoding = self._registry.resolve(model)
        return TokenCounter(encoder=encoding, name=encoding.name)

    def count_text(self, text: str, model: str) -> int:
        return self.counter(model).count(text)

    def text_tokens(self, value: Any, model: str) -> int:
        """Count a string, a sequence of strings (concatenated) or anything printable."""
        if isinstance(value, str):
            return self.count_text(value, model)
        if isinstance(value, Sequence) and all(isinstance(v, str) for v in value):
            return self.count_text("".join(value), model)
        return self.count_text(str(value), model)

    # -- images ---------------------------------------------------------------

    def image_tokens(self, part: ImagePart, model: str) -> int:
        fixed = self._config.fixed_image_costs
        if model in fixed or normalize_detail(part.detail) == "low":
            width = height = 0
        else:
            width, height = self._image_size(part.url)
        return image_cost(width, height, part.detail, model, fixed, source=part.url)

    def _image_size(self, url: str) -> tuple[int, int]:
        if self._resolver is None:
            raise ImageDecodeError(url, "no image resolver configured")
        try:
            width, height, _ = self._resolver.resolve(url)
        except Exception as exc:
            exc.add_note(f"while resolving image: {preview_source(url)}")
            raise
        if not width or not height:
            raise ImageDecodeError(url)
        return width, height

    # -- messages -------------------------------------------------------------

    def _overheads(self, model: str) -> tuple[int, int]:
        # The legacy snapshot framed messages differently; keep its constants exact.
        if model == self._config.legacy_model:
            return LEGACY_TOKENS_PER_MESSAGE, LEGACY_TOKENS_PER_NAME
        return TOKENS_PER_MESSAGE, TOKENS_PER_NAME

    def message_tokens(self, message: Message, model: str) -> int:
        """Tokens for one message, without the conversation's reply priming."""
        counter = self.counter(model)
        per_message, per_name = self._overheads(model)

        total = per_message + counter.count(message.role)
        if isinstance(message.content, str):
            total += counter.count(message.content)
            if message.content and message.name:
                total += per_name + counter.count(message.name)
            return total

        for part in message.content:
            if isinstance(part, ImagePart):
                total += self.image_tokens(part, model)
            else:
                total += counter.count(part.text)
        return total

    def messages_tokens(self, messages: Iterable[Message], model: str) -> int:
        total = sum(self.message_tokens(m, model) for m in messages)
        return total + REPLY_PRIMING_TOKENS

    # -- requests -------------------------------------------------------------

    def tool_tokens(self, tools: Iterable[ToolSpec], model: str) -> int:
        counter = self.counter(model)
        total = 0
        for tool in tools:
            total += TOKENS_PER_TOOL + counter.count(_tool_text(tool))
        return total

    def request_tokens(self, conversation: Conversation, model: str | None = None) -> int:
        """Prompt tokens for a whole request: messages, priming and tool specs.

        model overrides conversation.model, e.g. when a request is routed to a
        different upstream deployment than the one the client named.
        """
        model = model or conversation.model
        message_total = self.messages_tokens(conversation.messages, model)
        tool_total = self.tool_tokens(conversation.tools, model)
        logger.debug(
            f"Request tokens for {model}: {len(conversation.messages)} messages = "
            f"{message_total}, {len(conversation.tools)} tools = {tool_total}"
        )
        return message_total + tool_total

    # -- responses ------------------------------------------------------------

    def response_tokens(self, messages: Iterable[Message | str], model: str) -> int:
        """Completion tokens: emitted text only, no framing, images or tools."""
        counter = self.counter(model)
        return sum(counter.count(_plain_text(m)) for m in messages)

    def generated_tokens(
        self, model: str, texts: Sequence[str] = (), image_urls: Sequence[str] = ()
    ) -> int:
        """Tokens for generated output that may include images (priced at high detail)."""
        total = self.count_text("".join(texts), model)
        for url in image_urls:
            total += self.image_tokens(ImagePart(url=url, detail="high"), model)
        return total

    # -- audio ----------------------------------------------------------------

    def audio_tokens(self, text: str, model: str) -> int:
        """Speech synthesis bills per character; everything else per token."""
        if model.startswith(tuple(self._config.speech_prefixes)):
            return len(text)
        return self.count_text(text, model)


def _plain_text(message: Message | str) -> str:
    if isinstance(message, str):
        return message
    if isinstance(message.content, str):
        return message.content
    return "".join(p.text for p in message.content if isinstance(p, TextPart))


def _tool_text(tool: ToolSpec) -> str:
    text = tool.name
    if tool.description:
        text += tool.description
    if isinstance(tool.parameters, str):
        text += tool.parameters
    elif tool.parameters:
        try:
            text += json.dumps(tool.parameters, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise InvalidToolSpecError(tool.name, str(exc)) from exc
    return text

