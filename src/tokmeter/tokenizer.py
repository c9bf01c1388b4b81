from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Union
from collections.abc import Sequence


class Encoder(Protocol):
    """What the counter needs from a tokenizer; tiktoken.Encoding satisfies it."""

    name: str

    def encode(self, text: str, **kwargs: Any) -> list[int]: ...


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    """An image given as an http(s) URL or a (data-URL) base64 payload."""

    url: str
    detail: str = "auto"  # "low" | "high" | "auto"


Part = Union[TextPart, ImagePart]


@dataclass(frozen=True)
class Message:
    role: str
    content: str | Sequence[Part] = ""
    name: str | None = None


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str | None = None
    parameters: Any = None


@dataclass
class Conversation:
    model: str
    messages: list[Message] = field(default_factory=list)
    tools: list[ToolSpec] = field(default_factory=list)


def count_tokens(encoder: Encoder, text: str) -> int:
    """Number of token ids the encoder produces for text, taken verbatim.

    Special-token markers such as "<|endoftext|>" are counted as ordinary text.
    """
    if not text:
        return 0
    return len(encoder.encode(text, disallowed_special=()))


@dataclass(frozen=True)
class TokenCounter:
    encoder: Encoder
    name: str

    def count(self, text: str) -> int:
        return count_tokens(self.encoder, text)

    def count_all(self, texts: Sequence[str]) -> int:
        return sum(self.count(t) for t in texts)
