"""tokmeter — token accounting for multi-provider LLM gateways."""

from .calculator import TokenCalculator
from .config import AccountingConfig
from .encoding import (
    EncodingRegistry,
    Resolution,
    ResolutionSource,
    TokenizerFamily,
)
from .errors import (
    ImageDecodeError,
    InvalidToolSpecError,
    RegistryFrozenError,
    TokenCountError,
)
from .image import ImageResolver, image_cost
from .tokenizer import (
    Conversation,
    ImagePart,
    Message,
    TextPart,
    TokenCounter,
    ToolSpec,
    count_tokens,
)

__all__ = [
    "TokenCalculator",
    "AccountingConfig",
    "EncodingRegistry",
    "Resolution",
    "ResolutionSource",
    "TokenizerFamily",
    "TokenCountError",
    "ImageDecodeError",
    "InvalidToolSpecError",
    "RegistryFrozenError",
    "ImageResolver",
    "image_cost",
    "Conversation",
    "ImagePart",
    "Message",
    "TextPart",
    "TokenCounter",
    "ToolSpec",
    "count_tokens",
]

__version__ = "0.1.0"
