"""AI provider adapters.

Every provider exposes a single coroutine, invoke(prompt, image_data, retries),
returning the model's text. Provider SDK errors are translated into the tagged
errors of autocoder.ai.errors before they leave the adapter.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

import openai
from openai import AsyncOpenAI

from .errors import ErrorKind, ModelNotAuthorizedError, ModelUnavailableError, ProviderError, RateLimitError
from .models import Provider

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_OPENROUTER_MODEL = "moonshotai/kimi-k2:free"


class AIProvider(ABC):
    """Single-method contract the optimizer and response assembler rely on."""

    model: str

    @abstractmethod
    async def invoke(self, prompt: str, image_data: Optional[str] = None, retries: int = 3) -> str:
        """
        Send a single-turn prompt to the model.

        Args:
            prompt: Prompt text.
            image_data: Optional base64-encoded JPEG sent along with the prompt.
            retries: Remaining retries for transient failures.

        Returns:
            The model's reply text.

        Raises:
            ProviderError: When the call fails; subclasses tag the cause.
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model='{self.model}')"


class OpenRouterProvider(AIProvider):
    """OpenRouter through its OpenAI-compatible chat completions API."""

    def __init__(self,
                 api_key: Optional[str] = None,
                 model: str = DEFAULT_OPENROUTER_MODEL,
                 base_url: str = OPENROUTER_BASE_URL,
                 max_tokens: int = 64000,
                 timeout: float = 3600.0,
                 retry_delay: float = 5.0,
                 client: Optional[AsyncOpenAI] = None):
        self.api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        if not self.api_key and client is None:
            raise ValueError("OpenRouter API key is required")

        self.model = model or DEFAULT_OPENROUTER_MODEL
        self.max_tokens = max_tokens
        self.retry_delay = retry_delay

        # Retries are handled here so rate limits surface immediately
        self.client = client or AsyncOpenAI(
            api_key=self.api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            default_headers={"X-Title": "autocoder"},
        )

    def _build_messages(self, prompt: str, image_data: Optional[str]) -> List[Dict[str, Any]]:
        content: List[Dict[str, Any]] = []
        if image_data:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:image/jpeg;base64,{image_data}"},
            })
        content.append({"type": "text", "text": prompt})
        return [{"role": "user", "content": content}]

    async def invoke(self, prompt: str, image_data: Optional[str] = None, retries: int = 3) -> str:
        logger.info(f"Making OpenRouter API call with model: {self.model}")
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=self._build_messages(prompt, image_data),
                max_tokens=self.max_tokens,
                temperature=0.1,
            )
        except Exception as e:
            error = translate_openai_error(e)
            if error.kind != ErrorKind.OTHER or retries <= 0 or not _is_retryable(e):
                raise error from e
            logger.warning(f"OpenRouter API call failed, retrying in {self.retry_delay:.0f}s: {error}")
            await asyncio.sleep(self.retry_delay)
            return await self.invoke(prompt, image_data, retries - 1)

        if not response.choices:
            raise ProviderError("Invalid response format from OpenRouter API")
        content = response.choices[0].message.content or ""
        logger.debug(f"OpenRouter API returned {len(content)} characters")
        return content


def _is_retryable(error: Exception) -> bool:
    """Connection problems, timeouts and 5xx responses are worth another try."""
    if isinstance(error, openai.APIConnectionError):
        return True
    if isinstance(error, openai.APIStatusError):
        return error.status_code >= 500
    return False


def translate_openai_error(error: Exception) -> ProviderError:
    """Map an openai SDK exception onto the tagged provider errors."""
    if isinstance(error, ProviderError):
        return error

    status_code = getattr(error, "status_code", None)
    message = getattr(error, "message", None) or str(error)

    if isinstance(error, openai.RateLimitError):
        return RateLimitError(f"OpenRouter rate limit exceeded: {message}", status_code)
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError, openai.NotFoundError)):
        return ModelNotAuthorizedError(f"Model access denied: {message}", status_code)
    if isinstance(error, openai.APIStatusError) and status_code == 503:
        return ModelUnavailableError(f"Model unavailable: {message}", status_code)
    if isinstance(error, openai.BadRequestError) and "token" in message.lower():
        return ProviderError(f"Token limit exceeded: {message}", status_code)
    return ProviderError(f"OpenRouter API call failed: {message}", status_code)


def detect_provider(credentials: Dict[str, Any]) -> Provider:
    """Pick a provider from whichever credentials are present."""
    if credentials.get("openrouter_api_key"):
        return Provider.OPENROUTER
    if credentials.get("aws_access_key_id") and credentials.get("aws_secret_access_key"):
        return Provider.AWS
    raise ValueError(
        "No valid credentials found. Please provide either AWS credentials or an OpenRouter API key."
    )


def create_provider(provider: Union[Provider, str],
                    credentials: Dict[str, Any],
                    model: Optional[str] = None,
                    **options) -> AIProvider:
    """
    Create the adapter for a provider.

    Raises:
        ValueError: If the provider is unsupported or its credentials are missing.
    """
    name = provider.value if isinstance(provider, Provider) else str(provider).lower()

    if name == Provider.OPENROUTER.value:
        api_key = credentials.get("openrouter_api_key")
        if not api_key:
            raise ValueError("OpenRouter requires an API key (OPENROUTER_API_KEY)")
        logger.info(f"Using OpenRouter as AI provider with model: {model or DEFAULT_OPENROUTER_MODEL}")
        return OpenRouterProvider(api_key=api_key, model=model or DEFAULT_OPENROUTER_MODEL, **options)

    if name in (Provider.AWS.value, "bedrock"):
        raise ValueError("AWS Bedrock is not supported by this installation; use OpenRouter models")

    raise ValueError(f"Unsupported AI provider: {provider}. Supported providers: openrouter")
