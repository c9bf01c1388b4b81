#!/usr/bin/env python3
"""
tokmeter benchmark suite.

Two benchmarks:

  1. Counting Throughput   — request/response counts per second by conversation shape
  2. Cache Population      — concurrent first-resolution of many unseen model names

With --offline a whitespace tokenizer stands in for tiktoken, so no BPE files
are downloaded and the numbers measure the accounting overhead alone.

Usage:
    python benchmarks/benchmark.py
    python benchmarks/benchmark.py --offline --iterations 2000 --models 500 --workers 32
"""

from __future__ import annotations

import argparse
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from tokmeter import (
    Conversation,
    EncodingRegistry,
    ImagePart,
    Message,
    TextPart,
    TokenCalculator,
    ToolSpec,
)


# ─────────────────────────────────────────────────────────────────────────────
# Offline stand-ins
# ─────────────────────────────────────────────────────────────────────────────


class WhitespaceEncoding:
    def __init__(self, name: str) -> None:
        self.name = name

    def encode(self, text: str, **kwargs) -> list[int]:
        return [len(w) for w in text.split()]


class CountingLoader:
    def __init__(self, offline: bool) -> None:
        self.offline = offline
        self.calls: Counter[str] = Counter()

    def __call__(self, family: str):
        self.calls[family] += 1
        if self.offline:
            return WhitespaceEncoding(family)
        import tiktoken

        return tiktoken.get_encoding(family)


class FixedSizeResolver:
    def resolve(self, url_or_base64: str) -> tuple[int, int, str]:
        return 2048, 1024, "png"


def _header(title: str) -> str:
    return f"\n{'═' * 72}\n  {title}\n{'═' * 72}"


def _hline() -> str:
    return "─" * 72


# ─────────────────────────────────────────────────────────────────────────────
# Benchmark 1: Counting Throughput
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class ShapeResult:
    name: str
    tokens: int
    per_second: float


def _shapes(turns: int) -> dict[str, Conversation]:
    text = "The quick brown fox jumps over the lazy dog. " * 8
    plain = [
        Message(role="user" if i % 2 == 0 else "assistant", content=f"{i}: {text}")
        for i in range(turns)
    ]
    with_images = plain + [
        Message(
            role="user",
            content=[TextPart("compare these"), ImagePart("https://img.example/1.png"),
                     ImagePart("https://img.example/2.png", detail="low")],
        )
    ]
    tools = [
        ToolSpec(
            name=f"tool_{i}",
            description="Look something up in the knowledge base",
            parameters={"type": "object", "properties": {"query": {"type": "string"}}},
        )
        for i in range(5)
    ]
    return {
        "plain": Conversation(model="gpt-4o", messages=plain),
        "images": Conversation(model="gpt-4o", messages=with_images),
        "tools": Conversation(model="gpt-4o", messages=plain, tools=tools),
        "legacy": Conversation(model="gpt-3.5-turbo-0301", messages=plain),
    }


def bench_throughput(calc: TokenCalculator, *, iterations: int, turns: int) -> list[ShapeResult]:
    results: list[ShapeResult] = []
    for name, conversation in _shapes(turns).items():
        tokens = calc.request_tokens(conversation)  # warm the cache
        t0 = time.perf_counter()
        for _ in range(iterations):
            calc.request_tokens(conversation)
        elapsed = time.perf_counter() - t0
        results.append(ShapeResult(name, tokens, iterations / elapsed if elapsed else 0.0))
    return results


def report_throughput(results: list[ShapeResult], turns: int) -> None:
    print(_header(f"Benchmark 1: Counting Throughput ({turns} messages)"))
    print(f"{'Shape':<10}  {'Tokens':>8}  {'Counts/sec':>12}")
    print(_hline())
    for r in results:
        print(f"{r.name:<10}  {r.tokens:>8,}  {r.per_second:>12,.0f}")
    print()


# ─────────────────────────────────────────────────────────────────────────────
# Benchmark 2: Cache Population
# ─────────────────────────────────────────────────────────────────────────────


def bench_population(*, models: int, workers: int, offline: bool) -> tuple[float, EncodingRegistry, CountingLoader]:
    loader = CountingLoader(offline)
    registry = EncodingRegistry(loader=loader)
    names = [f"unseen-model-{i}" for i in range(models)]
    t0 = time.perf_counter()
    with ThreadPoolExecutor(max_workers=workers) as pool:
        list(pool.map(registry.resolve, names * 2))
    return time.perf_counter() - t0, registry, loader


def report_population(elapsed: float, registry: EncodingRegistry, loader: CountingLoader, models: int, workers: int) -> None:
    print(_header(f"Benchmark 2: Cache Population ({models} models, {workers} workers)"))
    print(f"Cached models   : {len(registry):,} (expected {models:,})")
    print(f"Family loads    : {dict(loader.calls)}")
    print(f"Elapsed         : {elapsed * 1000:,.1f} ms")
    print()


def main() -> None:
    parser = argparse.ArgumentParser(description="tokmeter benchmarks")
    parser.add_argument("--offline", action="store_true", help="use a whitespace tokenizer")
    parser.add_argument("--iterations", type=int, default=500)
    parser.add_argument("--turns", type=int, default=20)
    parser.add_argument("--models", type=int, default=100)
    parser.add_argument("--workers", type=int, default=16)
    args = parser.parse_args()

    registry = EncodingRegistry(loader=CountingLoader(args.offline))
    calc = TokenCalculator(registry=registry, resolver=FixedSizeResolver())
    report_throughput(bench_throughput(calc, iterations=args.iterations, turns=args.turns), args.turns)

    elapsed, registry, loader = bench_population(
        models=args.models, workers=args.workers, offline=args.offline
    )
    report_population(elapsed, registry, loader, args.models, args.workers)


if __name__ == "__main__":
    main()
