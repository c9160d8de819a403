import asyncio
import pytest
from unittest.mock import Mock
from autocoder.ai.errors import NoValidCommandsError, RateLimitError
from autocoder.ai.response import END_OF_SUGGESTIONS, ResponseAssembler, build_continuation_prompt


FIRST_PART = "git add a.js\n<<<EOF\nconst a = 1;\nEOF>>>\ngit add b.js\n<<<EOF\nconst b ="
SECOND_PART = "git add b.js\n<<<EOF\nconst b = 2;\nEOF>>>\n" + END_OF_SUGGESTIONS


class TestResponseAssembler:
    def test_single_turn_with_sentinel(self, fake_provider_factory):
        reply = "git add a.js\n<<<EOF\nx\nEOF>>>\n" + END_OF_SUGGESTIONS
        provider = fake_provider_factory([reply])
        assembler = ResponseAssembler(provider)

        result = asyncio.run(assembler.get_complete_response("prompt", image_data="aW1n"))

        assert result == reply
        assert len(provider.calls) == 1
        assert provider.calls[0]["image_data"] == "aW1n"
        assert assembler.last_error is None

    def test_continues_until_sentinel(self, fake_provider_factory):
        provider = fake_provider_factory([FIRST_PART, SECOND_PART])

        result = asyncio.run(ResponseAssembler(provider).get_complete_response("prompt", image_data="aW1n"))

        # The half-written second command is dropped and rewritten by the next turn
        assert result == "git add a.js\n<<<EOF\nconst a = 1;\nEOF>>>\n" + SECOND_PART
        assert len(provider.calls) == 2
        continuation = provider.calls[1]
        assert continuation["image_data"] is None
        assert continuation["prompt"].startswith("prompt\n\nPrevious response:\ngit add a.js")
        assert "continue from where you left off" in continuation["prompt"]

    def test_first_turn_without_commands(self, fake_provider_factory):
        provider = fake_provider_factory(["I am not sure what to change."])

        with pytest.raises(NoValidCommandsError):
            asyncio.run(ResponseAssembler(provider).get_complete_response("prompt"))

    def test_first_turn_sentinel_without_commands_is_accepted(self, fake_provider_factory):
        provider = fake_provider_factory(["No changes are necessary.\n" + END_OF_SUGGESTIONS])

        result = asyncio.run(ResponseAssembler(provider).get_complete_response("prompt"))

        assert result.endswith(END_OF_SUGGESTIONS)

    def test_request_cap(self, fake_provider_factory, caplog):
        provider = fake_provider_factory(lambda prompt: "git add x.js\n<<<EOF\npartial")
        assembler = ResponseAssembler(provider, max_requests=10)

        with caplog.at_level("WARNING"):
            result = asyncio.run(assembler.get_complete_response("prompt", max_requests=3))

        assert len(provider.calls) == 3
        assert result == ""
        assert "Reached maximum number of requests (3)" in caplog.text

    def test_provider_error_returns_partial_response(self, fake_provider_factory):
        error = RateLimitError("slow down")
        provider = fake_provider_factory([FIRST_PART, error])
        on_result = Mock()
        assembler = ResponseAssembler(provider, on_result=on_result)

        result = asyncio.run(assembler.get_complete_response("prompt"))

        assert result == "git add a.js\n<<<EOF\nconst a = 1;\nEOF>>>\n"
        assert assembler.last_error is error
        assert on_result.call_args_list[0].args == (True, None)
        assert on_result.call_args_list[1].args == (False, error)

    def test_provider_error_on_first_turn(self, fake_provider_factory):
        provider = fake_provider_factory([RuntimeError("connection refused")])
        assembler = ResponseAssembler(provider)

        result = asyncio.run(assembler.get_complete_response("prompt"))

        assert result == ""
        assert isinstance(assembler.last_error, RuntimeError)


class TestContinuationPrompt:
    def test_format(self):
        prompt = build_continuation_prompt("Do things", "git add a")

        assert prompt == (
            "Do things\n\nPrevious response:\ngit add a\n\n"
            "Please continue from where you left off. Remember to end your response with "
            "END_OF_SUGGESTIONS when you have no more changes to suggest."
        )
