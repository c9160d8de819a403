import asyncio
import httpx
import openai
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch
from autocoder.ai.errors import ErrorKind, ModelNotAuthorizedError, ModelUnavailableError, ProviderError, RateLimitError
from autocoder.ai.models import Provider
from autocoder.ai.provider import (
    OpenRouterProvider, create_provider, detect_provider, translate_openai_error,
)


def status_error(cls, status, message=None):
    request = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return cls(message or f"Error code: {status}", response=response, body=None)


def completion(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


@pytest.fixture
def client():
    client = Mock()
    client.chat.completions.create = AsyncMock(return_value=completion("git add a.js"))
    return client


class TestOpenRouterProvider:
    def test_invoke_returns_text(self, client):
        provider = OpenRouterProvider(model="qwen/qwen3-coder:free", client=client, max_tokens=1000)

        result = asyncio.run(provider.invoke("hello"))

        assert result == "git add a.js"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "qwen/qwen3-coder:free"
        assert kwargs["max_tokens"] == 1000
        assert kwargs["messages"] == [{"role": "user", "content": [{"type": "text", "text": "hello"}]}]

    def test_image_is_sent_first(self, client):
        provider = OpenRouterProvider(client=client)

        asyncio.run(provider.invoke("describe", image_data="aW1n"))

        content = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert content[0] == {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,aW1n"}}
        assert content[1] == {"type": "text", "text": "describe"}

    def test_rate_limit_is_not_retried(self, client):
        client.chat.completions.create.side_effect = status_error(openai.RateLimitError, 429)
        provider = OpenRouterProvider(client=client, retry_delay=0)

        with pytest.raises(RateLimitError) as exc_info:
            asyncio.run(provider.invoke("hello"))

        assert exc_info.value.status_code == 429
        assert client.chat.completions.create.call_count == 1

    def test_transient_errors_are_retried(self, client):
        client.chat.completions.create.side_effect = [
            status_error(openai.InternalServerError, 500),
            completion("recovered"),
        ]
        provider = OpenRouterProvider(client=client, retry_delay=0)

        assert asyncio.run(provider.invoke("hello")) == "recovered"
        assert client.chat.completions.create.call_count == 2

    def test_retries_exhausted(self, client):
        client.chat.completions.create.side_effect = status_error(openai.InternalServerError, 500)
        provider = OpenRouterProvider(client=client, retry_delay=0)

        with pytest.raises(ProviderError) as exc_info:
            asyncio.run(provider.invoke("hello", retries=1))

        assert exc_info.value.kind == ErrorKind.OTHER
        assert client.chat.completions.create.call_count == 2

    def test_connection_errors_are_retried(self, client):
        request = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")
        client.chat.completions.create.side_effect = [
            openai.APIConnectionError(request=request),
            completion("reconnected"),
        ]
        provider = OpenRouterProvider(client=client, retry_delay=0)

        assert asyncio.run(provider.invoke("hello")) == "reconnected"
        assert client.chat.completions.create.call_count == 2

    def test_programming_errors_are_not_retried(self, client):
        client.chat.completions.create.side_effect = TypeError("unexpected keyword argument 'foo'")
        provider = OpenRouterProvider(client=client, retry_delay=0)

        with pytest.raises(ProviderError, match="unexpected keyword argument"):
            asyncio.run(provider.invoke("hello"))

        assert client.chat.completions.create.call_count == 1

    def test_client_errors_are_not_retried(self, client):
        client.chat.completions.create.side_effect = status_error(openai.UnprocessableEntityError, 422)
        provider = OpenRouterProvider(client=client, retry_delay=0)

        with pytest.raises(ProviderError):
            asyncio.run(provider.invoke("hello"))

        assert client.chat.completions.create.call_count == 1

    def test_bad_request_is_not_retried(self, client):
        client.chat.completions.create.side_effect = status_error(
            openai.BadRequestError, 400, "This model's maximum context length is 8192 tokens")
        provider = OpenRouterProvider(client=client, retry_delay=0)

        with pytest.raises(ProviderError, match="Token limit exceeded"):
            asyncio.run(provider.invoke("hello"))

        assert client.chat.completions.create.call_count == 1

    def test_empty_choices(self, client):
        client.chat.completions.create.return_value = SimpleNamespace(choices=[])
        provider = OpenRouterProvider(client=client)

        with pytest.raises(ProviderError, match="Invalid response format"):
            asyncio.run(provider.invoke("hello"))

    def test_missing_content_is_empty_text(self, client):
        client.chat.completions.create.return_value = completion(None)

        assert asyncio.run(OpenRouterProvider(client=client).invoke("hello")) == ""

    def test_requires_api_key(self):
        with patch.dict('os.environ', {}, clear=True):
            with pytest.raises(ValueError, match="API key is required"):
                OpenRouterProvider()

    def test_repr(self, client):
        assert repr(OpenRouterProvider(model="m", client=client)) == "OpenRouterProvider(model='m')"


class TestTranslateOpenAIError:
    @pytest.mark.parametrize("cls,status,expected", [
        (openai.RateLimitError, 429, RateLimitError),
        (openai.AuthenticationError, 401, ModelNotAuthorizedError),
        (openai.PermissionDeniedError, 403, ModelNotAuthorizedError),
        (openai.NotFoundError, 404, ModelNotAuthorizedError),
        (openai.InternalServerError, 503, ModelUnavailableError),
    ])
    def test_status_errors(self, cls, status, expected):
        error = translate_openai_error(status_error(cls, status))

        assert type(error) is expected
        assert error.status_code == status

    def test_other_errors_are_untagged(self):
        error = translate_openai_error(RuntimeError("socket closed"))

        assert type(error) is ProviderError
        assert error.kind == ErrorKind.OTHER
        assert "socket closed" in str(error)

    def test_tagged_errors_pass_through(self):
        original = RateLimitError("slow")

        assert translate_openai_error(original) is original


class TestProviderFactory:
    def test_detect_provider(self):
        assert detect_provider({"openrouter_api_key": "k"}) == Provider.OPENROUTER
        assert detect_provider({"aws_access_key_id": "a", "aws_secret_access_key": "b"}) == Provider.AWS
        with pytest.raises(ValueError):
            detect_provider({})

    def test_create_openrouter_provider(self):
        provider = create_provider(Provider.OPENROUTER, {"openrouter_api_key": "sk-test"}, "qwen/qwen3-coder:free",
                                   max_tokens=2000)

        assert isinstance(provider, OpenRouterProvider)
        assert provider.model == "qwen/qwen3-coder:free"
        assert provider.max_tokens == 2000

    def test_create_requires_credentials(self):
        with pytest.raises(ValueError, match="API key"):
            create_provider("openrouter", {}, "m")

    def test_unsupported_providers(self):
        with pytest.raises(ValueError, match="AWS Bedrock"):
            create_provider("aws", {"aws_access_key_id": "a"}, "m")
        with pytest.raises(ValueError, match="Unsupported AI provider"):
            create_provider("azure", {}, "m")
