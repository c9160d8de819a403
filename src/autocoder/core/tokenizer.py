"""
Token estimation for autocoder.

This module approximates the token cost of repository content, classifies
file paths by type and priority, and knows the context window of the models
we route requests to. Estimates use a fixed ~4 characters per token ratio,
which keeps results deterministic across models.
"""

import logging
import math
import os
from typing import Any, Dict, Optional

from .models import BudgetAllocation, FileRecord, FileType

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4

# Share of the context window usable for input; the rest is left for the reply
INPUT_BUDGET_RATIO = 0.8

DEFAULT_MODEL_LIMIT = 32000

MODEL_CONTEXT_LIMITS: Dict[str, int] = {
    'moonshotai/kimi-k2:free': 32768,
    'google/gemini-2.0-flash-exp:free': 1048576,
    'us.anthropic.claude-3-7-sonnet': 200000,
    'us.anthropic.claude-sonnet-4': 200000,
    'gpt-4': 8192,
    'gpt-4-32k': 32768,
    'gpt-3.5-turbo': 4096,
    'gpt-3.5-turbo-16k': 16384,
}

# Priority scale, highest first
PRIORITY_HIGHEST = 100
PRIORITY_MEDIUM_HIGH = 80
PRIORITY_MEDIUM = 60
PRIORITY_MEDIUM_LOW = 50
PRIORITY_LOW = 30
PRIORITY_LOWEST = 10

EXTENSION_TYPES: Dict[str, FileType] = {
    '.js': FileType.JAVASCRIPT,
    '.ts': FileType.JAVASCRIPT,
    '.jsx': FileType.JAVASCRIPT,
    '.tsx': FileType.JAVASCRIPT,
    '.py': FileType.PYTHON,
    '.md': FileType.DOCUMENTATION,
    '.txt': FileType.DOCUMENTATION,
    '.json': FileType.CONFIGURATION,
    '.yml': FileType.CONFIGURATION,
    '.yaml': FileType.CONFIGURATION,
    '.html': FileType.MARKUP,
}


def get_budget(model_limit: int) -> int:
    """Usable input tokens for a model with the given context window."""
    return int(math.floor(model_limit * INPUT_BUDGET_RATIO))


class TokenEstimator:
    """
    Approximates token counts and classifies files for a given model.

    None of the methods raise: bad input degrades to 0 tokens, the default
    context limit or the lowest priority.
    """

    def __init__(self, model_id: Optional[str] = None):
        """
        Initialize the estimator.

        Args:
            model_id: Identifier of the model the content is destined for.
                      Used as the default for get_model_limit().
        """
        self.model_id = model_id if isinstance(model_id, str) else None
        logger.debug(f"Token estimator initialized for model: {self.model_id or 'default'}")

    def estimate_tokens(self, content: Any) -> int:
        """
        Estimate the number of tokens in the given content.

        Args:
            content: Text to estimate. Anything that is not a string counts as 0.

        Returns:
            ceil(len(content) / 4), or 0 for empty or non-string input.
        """
        if not isinstance(content, str):
            if content is not None:
                logger.debug(f"Content is not a string: {type(content).__name__}")
            return 0
        if not content:
            return 0
        return math.ceil(len(content) / CHARS_PER_TOKEN)

    def estimate_file(self, file_path: str, content: str) -> FileRecord:
        """Build a FileRecord for a single repository file."""
        return FileRecord(
            file_path=file_path,
            content=content,
            tokens=self.estimate_tokens(content),
            type=self.detect_file_type(file_path),
            priority=self.calculate_file_priority(file_path),
        )

    def get_model_limit(self, model_id: Any = ...) -> int:
        """
        Get the context window size of a model.

        Args:
            model_id: Model identifier. Defaults to the estimator's own model.

        Returns:
            The known context size, or DEFAULT_MODEL_LIMIT for unknown,
            empty or malformed identifiers.
        """
        if model_id is ...:
            model_id = self.model_id
        if not isinstance(model_id, str) or not model_id:
            return DEFAULT_MODEL_LIMIT
        return MODEL_CONTEXT_LIMITS.get(model_id, DEFAULT_MODEL_LIMIT)

    @staticmethod
    def calculate_file_priority(file_path: Any) -> int:
        """
        Rank a file path by how useful it usually is as model context.

        Exclusion rules are checked before inclusion rules, so a test file
        named index.js still ranks low.
        """
        if not isinstance(file_path, str):
            return PRIORITY_LOWEST
        path = file_path.lower()

        # Generated reports
        if 'coverage' in path or 'test-results' in path or 'playwright-report' in path:
            return PRIORITY_LOWEST
        if 'test' in path or '.test.' in path or '.spec.' in path:
            return PRIORITY_LOW
        if path.endswith('.html') and 'index.html' not in path:
            return PRIORITY_LOWEST

        # Entry points
        if ('package.json' in path or 'main.' in path
                or path.endswith('index.js') or path.endswith('index.ts')):
            return PRIORITY_HIGHEST
        if path.endswith('index.html') and 'report' not in path:
            return PRIORITY_HIGHEST

        if path.endswith(('.js', '.py', '.ts')):
            return PRIORITY_MEDIUM_HIGH
        if path.endswith('.md') or 'readme' in path:
            return PRIORITY_MEDIUM
        return PRIORITY_MEDIUM_LOW

    @staticmethod
    def detect_file_type(file_path: Any) -> FileType:
        """Map a file extension to its FileType."""
        if not isinstance(file_path, str):
            return FileType.UNKNOWN
        ext = os.path.splitext(file_path)[1].lower()
        return EXTENSION_TYPES.get(ext, FileType.UNKNOWN)

    def calculate_budget_allocation(self, estimated_total: int, model_limit: Any) -> BudgetAllocation:
        """
        Split the usable budget for a model across content categories.

        20% of the context window is reserved for the response; the rest is
        divided 50/30/20 between core files, documentation and tests/config.
        Flooring each part keeps their sum within the total.
        """
        if not isinstance(model_limit, (int, float)) or isinstance(model_limit, bool) or model_limit <= 0:
            model_limit = DEFAULT_MODEL_LIMIT
        total = get_budget(model_limit)
        allocation = BudgetAllocation(
            core_files=int(math.floor(total * 0.50)),
            documentation=int(math.floor(total * 0.30)),
            tests_config=int(math.floor(total * 0.20)),
            total=total,
        )
        logger.debug(f"Budget for ~{estimated_total} tokens against limit {model_limit}: {allocation}")
        return allocation
