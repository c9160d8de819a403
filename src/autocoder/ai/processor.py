"""
Code suggestion sessions.

The CodeSuggestionProcessor ties the pieces together: it parses the model
list, keeps a FallbackManager and a provider for the current model, fits the
repository snapshot into the model's budget, collects the complete response
and parses the suggested git commands into file changes.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..core.cache import SummaryCache
from ..core.models import Config
from ..core.optimizer import ContentOptimizer
from ..core.snapshot import build_snapshot
from .errors import ModelNotAuthorizedError
from .fallback import FallbackManager
from .model_selector import DEFAULT_MODEL_ID, ModelSelector
from .models import FallbackOptions, Model, ModelStatus
from .provider import AIProvider, create_provider
from .response import END_OF_SUGGESTIONS, ResponseAssembler

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., AIProvider]

# (start marker, end marker), tried in order when two start at the same place
CONTENT_MARKERS: List[Tuple[str, str]] = [
    ('<<<EOF', 'EOF>>>'),
    ('<<EOF', 'EOF>>'),
    ('<<EOF', 'EOF'),
    ('```', '```'),
]


@dataclass
class ProcessorOptions:
    """Options for a suggestion session."""
    models: str = DEFAULT_MODEL_ID
    ai_provider: str = 'auto'
    max_tokens: int = 64000
    max_requests: int = 10
    request_timeout: float = 3600.0
    fallback: FallbackOptions = field(
        default_factory=lambda: FallbackOptions(retry_interval=5, rate_limit_cooldown=300000, max_retries=2)
    )


@dataclass
class FileChange:
    """A file write suggested by the model."""
    command: str
    file_path: str
    content: str


class CodeSuggestionProcessor:
    """Runs a change request against a repository snapshot with model fallback."""

    def __init__(self,
                 options: Optional[ProcessorOptions] = None,
                 credentials: Optional[Dict[str, Any]] = None,
                 config: Optional[Config] = None,
                 cache: Optional[SummaryCache] = None,
                 provider_factory: ProviderFactory = create_provider):
        self.options = options or ProcessorOptions()
        self.config = config or Config()
        self.credentials = credentials if credentials is not None else {
            'openrouter_api_key': self.config.openrouter_api_key,
        }
        self.cache = cache
        self.provider_factory = provider_factory

        self.fallback_manager: Optional[FallbackManager] = None
        self.provider: Optional[AIProvider] = None
        self.last_optimization_report: Dict[str, Any] = {}

    def initialize(self) -> Tuple[Model, str]:
        """
        Set up model selection, fallback tracking and the first provider.

        Returns:
            Tuple of (selected model, provider name).

        Raises:
            ValueError: If the provider for the first model cannot be created.
        """
        selector = ModelSelector(self.options.models)
        selector.log_model_priority()
        self.fallback_manager = FallbackManager(selector.get_all_models(), self.options.fallback)

        selected_model = self.fallback_manager.get_current_model()
        self.provider = self._create_provider(selected_model)
        return selected_model, self._provider_name(selected_model)

    def _provider_name(self, model: Model) -> str:
        if self.options.ai_provider == 'auto':
            return model.provider.value
        return self.options.ai_provider

    def _create_provider(self, model: Model) -> AIProvider:
        return self.provider_factory(
            self._provider_name(model),
            self.credentials,
            model.name,
            max_tokens=self.options.max_tokens,
            timeout=self.options.request_timeout,
        )

    # Prompt

    @staticmethod
    def minify_content(content: str) -> str:
        return re.sub(r'\s+', ' ', content).strip()

    def build_prompt(self, snapshot: Mapping[str, str], prompt_text: str, base_branch: str = 'main') -> str:
        """Build the suggestion prompt from the (optimized) snapshot and the request."""
        repo_content = '\n\n---\n\n'.join(
            f"File: {path}\n\n{self.minify_content(content)}" for path, content in snapshot.items()
        )
        return f"""
You are an AI assistant tasked with suggesting changes to a GitHub repository based on a pull request comment or description.
Below is the current structure and content of the repository, followed by the latest comment or pull request description.
Please analyze the repository content and the provided text, then suggest appropriate changes.

Repository content (minified):
{repo_content}

Description/Comment:
{prompt_text}

<instructions>
Based on the repository content and the provided text, suggest changes to the codebase.
Format your response as a series of git commands that can be executed to make the changes.
Each command should be on a new line and start with 'git'.
For file content changes, use 'git add' followed by the file path, then provide the new content between <<<EOF and EOF>>> markers.
Ensure all file paths are valid and use forward slashes.
Consider the overall architecture and coding style of the existing codebase when suggesting changes.
If not directly related to the requested changes, don't make code changes to those parts. we want to keep consistency and stability with each iteration
If the provided text is vague, don't make any changes.
If no changes are necessary or if the request is unclear, state so explicitly.
When you have finished suggesting all changes, end your response with the line {END_OF_SUGGESTIONS}.
</instructions>

Base branch: {base_branch}
"""

    # Session

    async def process_changes(self,
                              prompt_text: str,
                              base_branch: str = 'main',
                              snapshot: Optional[Mapping[str, str]] = None) -> str:
        """
        Ask the models for changes, rotating models on failure.

        Every configured model is tried at most once. Returns the response of
        the first model that answers, or an empty string when none does. A
        model that fails its file classification call is passed over before
        the suggestion request is sent.

        Raises:
            RuntimeError: If initialize() has not been called.
            NoValidCommandsError: If a model's first reply contains no git commands.
        """
        if self.fallback_manager is None or self.provider is None:
            raise RuntimeError("Processor not initialized. Call initialize() first.")

        if snapshot is None:
            snapshot = build_snapshot(os.getcwd(), self.config)

        manager = self.fallback_manager
        model_count = len(manager.models)
        attempt = 0
        switches = 0
        while attempt < model_count:
            model = manager.get_current_model()
            if self.provider.model != model.name:
                try:
                    self.provider = self._create_provider(model)
                except ValueError as e:
                    attempt += 1
                    logger.warning(f"Cannot create provider for {model.display_name}: {e}")
                    manager.handle_model_result(model, False, ModelNotAuthorizedError(str(e)))
                    continue

            optimizer = ContentOptimizer(self.provider, manager, self.cache, self.config)
            optimized = await optimizer.process_with_tokenization(snapshot, prompt_text, model)
            self.last_optimization_report = optimizer.get_optimization_report()

            # A failed classification call may already have moved the manager off this model
            if manager.model_states[model.name].status != ModelStatus.AVAILABLE and switches < model_count:
                switches += 1
                logger.warning(f"Model {model.display_name} failed during file classification, switching models")
                continue

            attempt += 1
            logger.info(f"Attempt {attempt}/{model_count} with {model.display_name}")

            assembler = ResponseAssembler(
                self.provider,
                self.options.max_requests,
                on_result=lambda success, error, used=model: manager.handle_model_result(used, success, error),
            )
            response = await assembler.get_complete_response(self.build_prompt(optimized, prompt_text, base_branch))

            if assembler.last_error is None or response:
                return response
            logger.warning(f"Model {model.display_name} did not answer, trying the next model")

        logger.error("All configured models failed to produce a response")
        return ""

    # Parsing

    @staticmethod
    def _extract_file_path(line: str) -> Optional[str]:
        parts = line.strip().split()
        if len(parts) < 3:
            return None
        file_path = parts[2].split('<<')[0].split('```')[0]
        return file_path or None

    @staticmethod
    def _find_content(response: str, start: int, limit: int) -> Optional[Tuple[str, int]]:
        """Content and end offset of the earliest marker block starting in response[start:limit]."""
        candidates = []
        for order, (open_marker, close_marker) in enumerate(CONTENT_MARKERS):
            position = response.find(open_marker, start)
            if position != -1 and position < limit:
                candidates.append((position, order, open_marker, close_marker))

        for position, _, open_marker, close_marker in sorted(candidates):
            content_start = position + len(open_marker)
            content_end = response.find(close_marker, content_start)
            if content_end != -1:
                return response[content_start:content_end].strip(), content_end + len(close_marker)
        return None

    def parse_commands(self, response: str) -> List[FileChange]:
        """
        Parse ``git add <path>`` commands and their file content.

        Blocks without recognizable content markers are logged and skipped.
        """
        lines = response.split('\n')
        offsets: List[int] = []
        position = 0
        for line in lines:
            offsets.append(position)
            position += len(line) + 1

        command_indexes = [i for i, line in enumerate(lines) if line.strip().startswith('git')]
        changes: List[FileChange] = []
        consumed = 0

        for n, index in enumerate(command_indexes):
            line = lines[index].strip()
            # Lines inside an already parsed content block are file content
            if offsets[index] < consumed or not line.startswith('git add'):
                continue

            file_path = self._extract_file_path(line)
            if file_path is None:
                logger.warning(f"git add without a file path: {line}")
                continue

            # A command's content has to start before the next command
            next_index = command_indexes[n + 1] if n + 1 < len(command_indexes) else None
            limit = offsets[next_index] if next_index is not None else len(response)
            found = self._find_content(response, offsets[index], limit)
            if found is None:
                logger.error(f"Invalid content markers for file: {file_path}")
                continue
            content, consumed = found

            changes.append(FileChange(command=line, file_path=file_path, content=content))

        return changes
