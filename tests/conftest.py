"""Shared fakes: a whitespace 'tokenizer' so tests need no BPE downloads."""

from __future__ import annotations

from collections import Counter

import pytest

from tokmeter.calculator import TokenCalculator
from tokmeter.encoding import EncodingRegistry


class FakeEncoding:
    """One token per whitespace-separated word."""

    def __init__(self, name: str) -> None:
        self.name = name

    def encode(self, text: str, **kwargs) -> list[int]:
        return [len(word) for word in text.split()]


class FakeLoader:
    def __init__(self) -> None:
        self.calls: Counter[str] = Counter()

    def __call__(self, family: str) -> FakeEncoding:
        self.calls[family] += 1
        return FakeEncoding(family)


class FakeResolver:
    """Image resolver returning fixed dimensions and recording what it was asked."""

    def __init__(self, width: int = 768, height: int = 768, error: Exception | None = None) -> None:
        self.width = width
        self.height = height
        self.error = error
        self.calls: list[str] = []

    def resolve(self, url_or_base64: str) -> tuple[int, int, str]:
        self.calls.append(url_or_base64)
        if self.error is not None:
            raise self.error
        return self.width, self.height, "png"


@pytest.fixture
def loader() -> FakeLoader:
    return FakeLoader()


@pytest.fixture
def registry(loader: FakeLoader) -> EncodingRegistry:
    return EncodingRegistry(loader=loader)


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def calculator(registry: EncodingRegistry, resolver: FakeResolver) -> TokenCalculator:
    return TokenCalculator(registry=registry, resolver=resolver)
