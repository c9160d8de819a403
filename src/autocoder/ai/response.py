"""Multi-turn response assembly.

Models often stop before they have listed every change. The assembler keeps
asking the model to continue until it prints the END_OF_SUGGESTIONS sentinel
or the request cap is hit.
"""

import logging
from typing import Callable, Optional

from .errors import NoValidCommandsError
from .provider import AIProvider

logger = logging.getLogger(__name__)

END_OF_SUGGESTIONS = "END_OF_SUGGESTIONS"
COMMAND_MARKER = "git"

ResultCallback = Callable[[bool, Optional[BaseException]], None]


def build_continuation_prompt(initial_prompt: str, previous_response: str) -> str:
    return (
        f"{initial_prompt}\n\nPrevious response:\n{previous_response}\n\n"
        f"Please continue from where you left off. Remember to end your response with "
        f"{END_OF_SUGGESTIONS} when you have no more changes to suggest."
    )


class ResponseAssembler:
    """Drives repeated single-turn calls until the model signals completion."""

    def __init__(self,
                 provider: AIProvider,
                 max_requests: int = 10,
                 on_result: Optional[ResultCallback] = None):
        """
        Args:
            provider: Adapter used for every turn.
            max_requests: Default cap on turns per response.
            on_result: Called with (success, error) after every turn, e.g. to
                       report outcomes to a FallbackManager.
        """
        self.provider = provider
        self.max_requests = max_requests
        self.on_result = on_result
        self.last_error: Optional[BaseException] = None

    def _report(self, success: bool, error: Optional[BaseException] = None) -> None:
        if self.on_result is not None:
            self.on_result(success, error)

    async def get_complete_response(self,
                                    initial_prompt: str,
                                    image_data: Optional[str] = None,
                                    max_requests: Optional[int] = None) -> str:
        """
        Collect a complete response from the model.

        Returns:
            The accumulated response. May be partial when the request cap is
            reached or a provider call fails after the first turn.

        Raises:
            NoValidCommandsError: If the first reply contains no git commands.
        """
        cap = max_requests if max_requests is not None else self.max_requests
        full_response = ""
        current_prompt = initial_prompt
        request_count = 0
        finished = False
        self.last_error = None

        while request_count < cap:
            request_count += 1
            logger.info(f"Making request {request_count} to {self.provider.model}...")

            try:
                response = await self.provider.invoke(current_prompt, image_data if request_count == 1 else None)
            except Exception as e:
                logger.error(f"Error making request {request_count} to {self.provider.model}: {e}")
                self.last_error = e
                self._report(False, e)
                break

            self._report(True)
            full_response += response

            if END_OF_SUGGESTIONS in response:
                logger.info("Received end of suggestions signal.")
                finished = True
                break

            if request_count == 1 and COMMAND_MARKER not in response:
                raise NoValidCommandsError()

            last_command = full_response.rfind(COMMAND_MARKER)
            if last_command == -1:
                raise NoValidCommandsError()

            # Drop the possibly half-written last command; the model rewrites it
            full_response = full_response[:last_command]
            current_prompt = build_continuation_prompt(initial_prompt, full_response)

        if not finished and request_count >= cap:
            logger.warning(f"Reached maximum number of requests ({cap}). The response may be incomplete.")

        return full_response
