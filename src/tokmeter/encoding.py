"""Tokenizer resolution: which tiktoken encoding a model name is billed with."""

from __future__ import annotations

import abc
import enum
import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass

import tiktoken
from tiktoken.model import MODEL_TO_ENCODING, encoding_name_for_model

from .config import AccountingConfig
from .errors import RegistryFrozenError

logger = logging.getLogger(__name__)


class TokenizerFamily(str, enum.Enum):
    """Encoding tables the registry knows how to load."""

    CL100K_BASE = "cl100k_base"
    O200K_BASE = "o200k_base"
    O200K_HARMONY = "o200k_harmony"
    P50K_BASE = "p50k_base"
    P50K_EDIT = "p50k_edit"
    R50K_BASE = "r50k_base"
    GPT2 = "gpt2"


DEFAULT_FAMILY = TokenizerFamily.CL100K_BASE
MODERN_FAMILY = TokenizerFamily.O200K_BASE


class ResolutionSource(str, enum.Enum):
    EXACT_OVERRIDE = "exact-override"
    BUILTIN_TABLE = "builtin-table"
    FAMILY_LOOKUP = "family-lookup"
    PREFIX_HEURISTIC = "prefix-heuristic"
    DEFAULT = "default"


@dataclass(frozen=True)
class Resolution:
    model: str
    family: TokenizerFamily
    source: ResolutionSource


EncodingLoader = Callable[[str], tiktoken.Encoding]


class ResolutionStrategy(abc.ABC):
    """One step of the model -> family lookup chain."""

    source: ResolutionSource

    @abc.abstractmethod
    def family_for(self, model: str) -> str | None:
        """Return a family name, or None to defer to the next strategy."""


class ExactOverride(ResolutionStrategy):
    source = ResolutionSource.EXACT_OVERRIDE

    def __init__(self, overrides: Mapping[str, str]) -> None:
        self._overrides = overrides

    def family_for(self, model: str) -> str | None:
        return self._overrides.get(model)


class BuiltinTable(ResolutionStrategy):
    source = ResolutionSource.BUILTIN_TABLE

    def family_for(self, model: str) -> str | None:
        return MODEL_TO_ENCODING.get(model)


class FamilyLookup(ResolutionStrategy):
    """Ask tiktoken directly; covers published model ids and dated snapshots."""

    source = ResolutionSource.FAMILY_LOOKUP

    def family_for(self, model: str) -> str | None:
        try:
            return encoding_name_for_model(model)
        except KeyError:
            return None


class PrefixHeuristic(ResolutionStrategy):
    source = ResolutionSource.PREFIX_HEURISTIC

    def __init__(self, prefixes: tuple[str, ...], family: TokenizerFamily = MODERN_FAMILY) -> None:
        self._prefixes = prefixes
        self._family = family

    def family_for(self, model: str) -> str | None:
        if model.startswith(self._prefixes):
            return self._family.value
        return None


class DefaultFamily(ResolutionStrategy):
    source = ResolutionSource.DEFAULT

    def __init__(self, family: TokenizerFamily = DEFAULT_FAMILY) -> None:
        self._family = family

    def family_for(self, model: str) -> str | None:
        return self._family.value


def _as_family(name: str) -> TokenizerFamily | None:
    try:
        return TokenizerFamily(name)
    except ValueError:
        return None


class EncodingRegistry:
    """Resolves model names to loaded encodings and memoizes the result.

    Construct once per process and share it. Resolution never fails: models
    nobody recognizes get the default family. The override table can only be
    extended before the first call to resolve().

    Usage:
        registry = EncodingRegistry()
        encoding = registry.resolve("gpt-4o-mini")
    """

    def __init__(
        self,
        config: AccountingConfig | None = None,
        loader: EncodingLoader | None = None,
    ) -> None:
        config = config or AccountingConfig()
        self._loader: EncodingLoader = loader or tiktoken.get_encoding
        self._default = _as_family(config.default_family)
        if self._default is None:
            logger.warning(
                f"Unknown default tokenizer family '{config.default_family}', "
                f"using {DEFAULT_FAMILY.value}"
            )
            self._default = DEFAULT_FAMILY

        self._overrides: dict[str, str] = dict(config.encoding_overrides)
        self._strategies: tuple[ResolutionStrategy, ...] = (
            ExactOverride(self._overrides),
            BuiltinTable(),
            FamilyLookup(),
            PrefixHeuristic(tuple(config.modern_prefixes)),
            DefaultFamily(self._default),
        )

        self._cache: dict[str, tiktoken.Encoding] = {}
        self._families: dict[TokenizerFamily, tiktoken.Encoding] = {}
        self._lock = threading.Lock()
        self._frozen = False

    @property
    def strategies(self) -> tuple[ResolutionStrategy, ...]:
        return self._strategies

    def add_override(self, model: str, family: str) -> None:
        """Map model to family ahead of tiktoken's own table."""
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"cannot override '{model}': registry has already resolved models"
                )
            self._overrides[model] = family

    def explain(self, model: str) -> Resolution:
        """Run the strategy chain for model without touching the cache."""
        for strategy in self._strategies:
            name = strategy.family_for(model)
            if name is None:
                continue
            family = _as_family(name)
            if family is None:
                logger.warning(
                    f"Model '{model}' maps to unsupported family '{name}' "
                    f"({strategy.source.value}), using {self._default.value}"
                )
                family = self._default
            if strategy.source is ResolutionSource.DEFAULT:
                logger.debug(f"Unknown model '{model}', using {family.value}")
            return Resolution(model=model, family=family, source=strategy.source)

        # DefaultFamily always answers
        raise AssertionError("resolution chain exhausted")

    def resolve(self, model: str) -> tiktoken.Encoding:
        encoding = self._cache.get(model)
        if encoding is not None:
            return encoding

        with self._lock:
            # freeze before consulting overrides so none can land mid-resolution
            self._frozen = True
            encoding = self._cache.get(model)
            if encoding is None:
                encoding = self._load(self.explain(model).family)
                self._cache[model] = encoding
        return encoding

    def _load(self, family: TokenizerFamily) -> tiktoken.Encoding:
        # caller holds self._lock
        encoding = self._families.get(family)
        if encoding is None:
            logger.debug(f"Loading tokenizer family {family.value}")
            encoding = self._loader(family.value)
            self._families[family] = encoding
        return encoding

    def cached_models(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._cache)

    def __len__(self) -> int:
        return len(self._cache)
