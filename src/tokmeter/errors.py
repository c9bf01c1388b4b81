from __future__ import annotations


class TokenCountError(Exception):
    """Base class for failures that abort a token count."""


class ImageDecodeError(TokenCountError):
    """Image dimensions could not be determined for an image part."""

    def __init__(self, source: str, reason: str = "fail to decode image config") -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"{reason}: {preview_source(source)}")


class InvalidToolSpecError(TokenCountError):
    """A tool's parameters could not be rendered to text."""

    def __init__(self, tool_name: str, reason: str) -> None:
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"count_tools_token_fail: tool '{tool_name}': {reason}")


class RegistryFrozenError(RuntimeError):
    """Raised when the override table is extended after the first resolution."""


def preview_source(source: str, limit: int = 96) -> str:
    # base64 payloads can be megabytes long
    if len(source) <= limit:
        return source
    return f"{source[:limit]}... ({len(source)} chars)"
