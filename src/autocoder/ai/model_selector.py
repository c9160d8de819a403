"""Parse the configured model list into prioritized Model objects."""

import logging
from typing import Dict, List, Optional

from .models import Model, Provider

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = 'moonshotai/kimi-k2:free'

# Models served through AWS Bedrock; anything else goes through OpenRouter
PROVIDER_MAPPINGS: Dict[str, Provider] = {
    'us.anthropic.claude-3-7-sonnet-20250219-v1:0': Provider.AWS,
    'us.anthropic.claude-sonnet-4-20250514-v1:0': Provider.AWS,
    'anthropic.claude-3-5-sonnet-20241022-v2:0': Provider.AWS,
    'anthropic.claude-3-haiku-20240307-v1:0': Provider.AWS,
}

DISPLAY_NAMES: Dict[str, str] = {
    'moonshotai/kimi-k2:free': 'Kimi K2 (Free) - Default OpenRouter',
    'us.anthropic.claude-3-7-sonnet-20250219-v1:0': 'Claude 3.7 Sonnet (AWS Bedrock) - Default AWS',
    'anthropic/claude-3.7-sonnet:beta': 'Claude 3.7 Sonnet (OpenRouter)',
    'google/gemini-2.0-flash-exp:free': 'Gemini 2.0 Flash (Free)',
    'deepseek/deepseek-r1-0528:free': 'DeepSeek R1 (Free)',
    'z-ai/glm-4.5-air:free': 'GLM-4.5 Air (Free)',
    'qwen/qwen3-235b-a22b:free': 'Qwen3-235B (Free)',
    'qwen/qwen3-30b-a3b:free': 'Qwen3-30B (Free)',
    'qwen/qwq-32b:free': 'QwQ 32B (Free)',
    'qwen/qwen3-coder:free': 'Qwen3 Coder (Free)',
}


def get_display_name(model_name: str) -> str:
    return DISPLAY_NAMES.get(model_name, model_name)


def parse_model(model_name: str) -> Model:
    """Build a Model for a single identifier."""
    provider = PROVIDER_MAPPINGS.get(model_name, Provider.OPENROUTER)
    return Model(name=model_name, provider=provider, display_name=get_display_name(model_name))


class ModelSelector:
    """Holds the prioritized list of models parsed from a comma-separated string."""

    def __init__(self, model_string: Optional[str] = None):
        self.models = self.parse_models(model_string)

    @staticmethod
    def parse_models(model_string: Optional[str]) -> List[Model]:
        """
        Parse a comma-separated model list.

        An empty list falls back to the default OpenRouter model only, so
        providers are never mixed unless asked for.
        """
        names = [name.strip() for name in (model_string or '').split(',')]
        names = [name for name in names if name]
        if not names:
            return [parse_model(DEFAULT_MODEL_ID)]
        return [parse_model(name) for name in names]

    def get_all_models(self) -> List[Model]:
        return list(self.models)

    def get_models_by_provider(self, provider: Provider) -> List[Model]:
        return [model for model in self.models if model.provider == provider]

    def get_providers_needed(self) -> List[Provider]:
        providers: List[Provider] = []
        for model in self.models:
            if model.provider not in providers:
                providers.append(model.provider)
        return providers

    def log_model_priority(self) -> None:
        logger.info(f"Model priority list ({len(self.models)} models):")
        for index, model in enumerate(self.models, start=1):
            logger.info(f"  {index}. {model.display_name} ({model.provider.value})")
