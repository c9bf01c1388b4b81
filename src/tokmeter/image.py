"""Vision token pricing: flat low-detail cost, or 512px tiles after downscaling."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from .errors import ImageDecodeError

LOW_DETAIL_COST = 85
BASE_COST = 85
TILE_COST = 170
TILE_SIZE = 512
MAX_SHORT_SIDE = 768


class ImageResolver(Protocol):
    """Turns an image URL or base64 payload into (width, height, format).

    Implementations may hit the network or decode locally; errors they raise
    abort the count for the whole conversation.
    """

    def resolve(self, url_or_base64: str) -> tuple[int, int, str]: ...


def normalize_detail(detail: str | None) -> str:
    if detail == "low":
        return "low"
    # "auto" and unset are priced as "high"
    return "high"


def _tiles_per_side(pixels: int) -> int:
    return (pixels + TILE_SIZE - 1) // TILE_SIZE


def tiled_cost(width: int, height: int) -> int:
    short_side, other_side = min(width, height), max(width, height)
    if short_side > MAX_SHORT_SIDE:
        # other_side / (short_side / 768), rounded up, in integer arithmetic
        other_side = -(-other_side * MAX_SHORT_SIDE // short_side)
        short_side = MAX_SHORT_SIDE
    tiles = _tiles_per_side(short_side) * _tiles_per_side(other_side)
    return tiles * TILE_COST + BASE_COST


def image_cost(
    width: int,
    height: int,
    detail: str | None = "high",
    model: str = "",
    fixed_costs: Mapping[str, int] | None = None,
    source: str = "",
) -> int:
    """Token cost of one image.

    Models in fixed_costs are billed their constant regardless of size or
    detail. Otherwise low detail costs 85 and anything else is tiled.
    source is only used to describe the image in errors.
    """
    if fixed_costs and model in fixed_costs:
        return fixed_costs[model]
    if normalize_detail(detail) == "low":
        return LOW_DETAIL_COST
    if width <= 0 or height <= 0:
        raise ImageDecodeError(source)
    return tiled_cost(width, height)
