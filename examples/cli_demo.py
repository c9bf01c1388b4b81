#!/usr/bin/env python3
"""Count prompt tokens for a chat-completions request body stored as JSON.

Usage:
    python examples/cli_demo.py request.json
    python examples/cli_demo.py request.json --model gpt-4o --image-size 2048x1024
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

# Add src to path for running without pip install
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from tokmeter import AccountingConfig, TokenCalculator, TokenCountError
from tokmeter.calculator import REPLY_PRIMING_TOKENS
from tokmeter.openai_compat import conversation_from_request


def _has_rich() -> bool:
    try:
        import rich
        return True
    except ImportError:
        return False


class StaticResolver:
    """Pretends every image has the same size; the demo decodes nothing."""

    def __init__(self, width: int, height: int) -> None:
        self.width = width
        self.height = height

    def resolve(self, url_or_base64: str) -> tuple[int, int, str]:
        return self.width, self.height, "unknown"


def parse_size(raw: str) -> tuple[int, int]:
    try:
        width, height = raw.lower().split("x")
        return int(width), int(height)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got '{raw}'")


def breakdown(calc: TokenCalculator, request: dict, model: str | None) -> tuple[str, list[tuple[str, int]], int]:
    conversation = conversation_from_request(request)
    model = model or conversation.model
    rows: list[tuple[str, int]] = []
    for i, message in enumerate(conversation.messages):
        label = f"[{i}] {message.role}" + (f" ({message.name})" if message.name else "")
        rows.append((label, calc.message_tokens(message, model)))
    rows.append(("reply priming", REPLY_PRIMING_TOKENS))
    for tool in conversation.tools:
        rows.append((f"tool {tool.name}", calc.tool_tokens([tool], model)))
    return model, rows, calc.request_tokens(conversation, model)


def render_plain(model: str, family: str, rows: list[tuple[str, int]], total: int) -> None:
    print(f"Model: {model} ({family})")
    for label, tokens in rows:
        print(f"  {label:<40} {tokens:>8,}")
    print(f"  {'TOTAL':<40} {total:>8,}")


def render_rich(model: str, family: str, rows: list[tuple[str, int]], total: int) -> None:
    from rich.console import Console
    from rich.table import Table

    table = Table(title=f"{model} ({family})")
    table.add_column("Item")
    table.add_column("Tokens", justify="right")
    for label, tokens in rows:
        table.add_row(label, f"{tokens:,}")
    table.add_row("TOTAL", f"{total:,}", style="bold cyan")
    Console().print(table)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("request", help="path to a chat-completions request JSON file")
    parser.add_argument("--model", help="count as this model instead of the request's")
    parser.add_argument("--config", help="accounting config JSON")
    parser.add_argument("--image-size", type=parse_size, default=(1024, 1024),
                        help="dimensions to assume for every image (default 1024x1024)")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    config = AccountingConfig.load(args.config) if args.config else AccountingConfig()
    calc = TokenCalculator(resolver=StaticResolver(*args.image_size), config=config)

    with open(args.request) as f:
        request = json.load(f)

    try:
        model, rows, total = breakdown(calc, request, args.model)
    except TokenCountError as e:
        print(f"Error: {e}")
        sys.exit(1)

    resolution = calc.registry.explain(model)
    label = f"{resolution.family.value} via {resolution.source.value}"
    if _has_rich():
        render_rich(model, label, rows, total)
    else:
        render_plain(model, label, rows, total)


if __name__ == "__main__":
    main()
