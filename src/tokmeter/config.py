from __future__ import annotations

import json
import logging
import pathlib
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

LEGACY_MODEL = "gpt-3.5-turbo-0301"

# Provider deployments that bill with the newer vocabulary but are unknown to tiktoken.
DEFAULT_ENCODING_OVERRIDES: dict[str, str] = {
    "ep-20240603062111-s4snw": "o200k_base",
    "doubao-pro-32k-240515": "o200k_base",
}

# Models billed a flat amount per image.
DEFAULT_FIXED_IMAGE_COSTS: dict[str, int] = {
    "glm-4v": 1047,
}

DEFAULT_MODERN_PREFIXES: tuple[str, ...] = ("gpt-4o",)
DEFAULT_SPEECH_PREFIXES: tuple[str, ...] = ("tts",)


@dataclass
class AccountingConfig:
    """Knobs for token accounting.

    encoding_overrides: model name -> tokenizer family, consulted before tiktoken's table
    legacy_model: the one model that uses 4 tokens per message and -1 per name
    fixed_image_costs: model name -> flat token cost for any image
    modern_prefixes: model prefixes that fall back to o200k_base when otherwise unknown
    speech_prefixes: model prefixes whose audio input is counted in code points
    default_family: tokenizer family used when nothing else matches
    """

    encoding_overrides: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_ENCODING_OVERRIDES)
    )
    legacy_model: str = LEGACY_MODEL
    fixed_image_costs: dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_FIXED_IMAGE_COSTS)
    )
    modern_prefixes: tuple[str, ...] = DEFAULT_MODERN_PREFIXES
    speech_prefixes: tuple[str, ...] = DEFAULT_SPEECH_PREFIXES
    default_family: str = "cl100k_base"

    @staticmethod
    def load(path: pathlib.Path | str) -> "AccountingConfig":
        """Load config from a JSON file, or defaults if the file does not exist.

        Mapping keys in the file extend the defaults rather than replace them.
        """
        path = pathlib.Path(path)
        if not path.exists():
            logger.debug(f"No accounting config at {path}, using defaults")
            return AccountingConfig()

        obj = json.loads(path.read_text())
        config = AccountingConfig()
        config.encoding_overrides.update(obj.get("encoding_overrides", {}))
        config.fixed_image_costs.update(
            {k: int(v) for k, v in obj.get("fixed_image_costs", {}).items()}
        )
        if "legacy_model" in obj:
            config.legacy_model = obj["legacy_model"]
        if "modern_prefixes" in obj:
            config.modern_prefixes = tuple(obj["modern_prefixes"])
        if "speech_prefixes" in obj:
            config.speech_prefixes = tuple(obj["speech_prefixes"])
        if "default_family" in obj:
            config.default_family = obj["default_family"]

        logger.info(
            f"Loaded accounting config from {path}: "
            f"{len(config.encoding_overrides)} encoding overrides, "
            f"{len(config.fixed_image_costs)} fixed image costs"
        )
        return config
