"""Model selection, fallback and provider components for autocoder."""

from .errors import (
    ProviderError,
    RateLimitError,
    ModelNotAuthorizedError,
    ModelUnavailableError,
    NoValidCommandsError,
)
from .models import Model, Provider, ModelStatus, ModelState, FallbackOptions
from .model_selector import ModelSelector
from .fallback import FallbackManager
from .provider import AIProvider, OpenRouterProvider, create_provider
from .response import ResponseAssembler
from .processor import CodeSuggestionProcessor, ProcessorOptions, FileChange

__all__ = [
    "ProviderError",
    "RateLimitError",
    "ModelNotAuthorizedError",
    "ModelUnavailableError",
    "NoValidCommandsError",
    "Model",
    "Provider",
    "ModelStatus",
    "ModelState",
    "FallbackOptions",
    "ModelSelector",
    "FallbackManager",
    "AIProvider",
    "OpenRouterProvider",
    "create_provider",
    "ResponseAssembler",
    "CodeSuggestionProcessor",
    "ProcessorOptions",
    "FileChange",
]
