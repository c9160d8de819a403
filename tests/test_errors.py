import pytest
from autocoder.ai.errors import (
    ErrorKind, ProviderError, RateLimitError, ModelNotAuthorizedError, ModelUnavailableError,
    NoValidCommandsError, classify_error,
    is_rate_limit_error, is_model_not_authorized_error, is_model_unavailable_error,
)


class TestStringClassifiers:
    @pytest.mark.parametrize("message", [
        "Rate limit exceeded",
        "error: rate_limit",
        "429 Too Many Requests",
        "Quota exceeded for this key",
        "usage limit reached",
        "Request was throttled",
    ])
    def test_rate_limit_messages(self, message):
        assert is_rate_limit_error(Exception(message))
        assert classify_error(Exception(message)) == ErrorKind.RATE_LIMITED

    @pytest.mark.parametrize("message", [
        "User is not authorized to perform this action",
        "Access denied",
        "403 Forbidden",
        "Model is not enabled for your account",
        "Model not found",
        "Invalid model id",
        "ValidationException: The provided model identifier is invalid",
        "Insufficient permissions",
    ])
    def test_authorization_messages(self, message):
        assert is_model_not_authorized_error(Exception(message))
        assert classify_error(Exception(message)) == ErrorKind.NOT_AUTHORIZED

    @pytest.mark.parametrize("message", [
        "Model not available right now",
        "Service Unavailable",
        "Region not supported",
        "The model is temporarily unavailable",
    ])
    def test_unavailable_messages(self, message):
        assert is_model_unavailable_error(Exception(message))
        assert classify_error(Exception(message)) == ErrorKind.UNAVAILABLE

    def test_precedence(self):
        # Authorization is checked before unavailability and rate limits
        assert classify_error(Exception("forbidden: service unavailable, too many requests")) == ErrorKind.NOT_AUTHORIZED
        assert classify_error(Exception("service unavailable: too many requests")) == ErrorKind.UNAVAILABLE

    def test_generic_and_missing_errors(self):
        assert classify_error(Exception("connection reset by peer")) == ErrorKind.OTHER
        assert classify_error(None) == ErrorKind.OTHER
        assert not is_rate_limit_error(None)
        assert not is_model_not_authorized_error(None)
        assert not is_model_unavailable_error(None)

    def test_plain_strings_are_classified(self):
        assert classify_error("429") == ErrorKind.RATE_LIMITED


class TestTaggedErrors:
    def test_tags_override_message_text(self):
        # The message mentions a rate limit but the adapter knows better
        error = ModelNotAuthorizedError("rate limit on an account without access")

        assert classify_error(error) == ErrorKind.NOT_AUTHORIZED
        assert not is_rate_limit_error(error)

    def test_each_tag(self):
        assert classify_error(RateLimitError("x")) == ErrorKind.RATE_LIMITED
        assert classify_error(ModelUnavailableError("x")) == ErrorKind.UNAVAILABLE
        assert classify_error(ModelNotAuthorizedError("x")) == ErrorKind.NOT_AUTHORIZED

    def test_untagged_provider_error_falls_back_to_text(self):
        assert classify_error(ProviderError("Too many requests", 500)) == ErrorKind.RATE_LIMITED
        assert classify_error(ProviderError("boom")) == ErrorKind.OTHER

    def test_status_code_is_kept(self):
        error = RateLimitError("slow down", 429)

        assert error.status_code == 429
        assert error.message == "slow down"
        assert isinstance(error, ProviderError)

    def test_no_valid_commands_error(self):
        error = NoValidCommandsError()

        assert isinstance(error, ValueError)
        assert "No valid git commands" in str(error)
