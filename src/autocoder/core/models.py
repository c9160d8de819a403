"""
Core data models for autocoder.

This module contains the configuration object and the small records passed
between the token estimator, the content optimizer and the summary cache.
"""

import os
import time
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Set, Optional, Any

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load environment variables from .env file
load_dotenv()


@dataclass
class Config:
    """Configuration settings for autocoder."""

    openrouter_api_key: str = field(default_factory=lambda: os.getenv('OPENROUTER_API_KEY', ''))
    models: str = field(default_factory=lambda: os.getenv('AUTOCODER_MODELS', ''))
    cache_dir: Optional[str] = field(default_factory=lambda: os.getenv('AUTOCODER_CACHE_DIR') or None)

    # Directories to exclude when building a snapshot
    excluded_dirs: Set[str] = field(default_factory=lambda: {
        '__pycache__', '.git', '.hg', '.svn', '.idea', '.vscode',
        'node_modules', '.pytest_cache', '.mypy_cache', '.tox',
        'venv', 'env', '.env', 'virtualenv', '.virtualenv',
        'bower_components', 'vendor', 'dist', 'build', '.next',
        '.nuxt', '.output', '.parcel-cache', '.cache'
    })

    # Common binary/non-text extensions
    binary_extensions: Set[str] = field(default_factory=lambda: {
        '.exe', '.dll', '.so', '.a', '.lib', '.dylib', '.o', '.obj',
        '.zip', '.tar', '.gz', '.bz2', '.7z', '.rar', '.jar', '.war',
        '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.ico', '.svg', '.webp',
        '.mp3', '.mp4', '.avi', '.mov', '.wav', '.flac', '.ogg',
        '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
        '.db', '.sqlite', '.pyc', '.pyo', '.pyd', '.whl', '.class',
        '.woff', '.woff2', '.ttf', '.eot', '.DS_Store'
    })

    # Large files that might be text but should be skipped
    skip_patterns: Set[str] = field(default_factory=lambda: {
        'package-lock.json', 'yarn.lock', 'pnpm-lock.yaml',
        'poetry.lock', 'Pipfile.lock', 'composer.lock',
        '*.min.js', '*.min.css', '*.map'
    })

    # Encoding fallbacks
    encoding_fallbacks: List[str] = field(default_factory=lambda: [
        'utf-8', 'utf-8-sig', 'latin-1'
    ])

    max_file_size: int = 1024 * 1024  # 1MB default

    # Optimizer tunables
    max_listing_files: int = 50
    preview_chars: int = 100
    summary_threshold_tokens: int = 2000
    summary_ratio: float = 0.3
    summary_batch_size: int = 3
    classification_timeout: float = 120.0
    summary_ttl: float = 24 * 60 * 60


class FileType(str, Enum):
    """Coarse file categories used for prioritization and summaries."""
    JAVASCRIPT = "javascript"
    PYTHON = "python"
    DOCUMENTATION = "documentation"
    CONFIGURATION = "configuration"
    MARKUP = "markup"
    UNKNOWN = "unknown"


@dataclass
class FileRecord:
    """A repository file with its estimated token cost."""

    file_path: str
    content: str
    tokens: int
    type: FileType = FileType.UNKNOWN
    priority: int = 50

    # Set when the content has been replaced by a summary
    summary: Optional[str] = None
    summary_tokens: Optional[int] = None
    original_tokens: Optional[int] = None

    @property
    def is_summarized(self) -> bool:
        return self.summary is not None

    @property
    def effective_tokens(self) -> int:
        """Tokens charged against the budget for this record."""
        if self.summary_tokens is not None:
            return self.summary_tokens
        return self.tokens

    @property
    def output_content(self) -> str:
        return self.summary if self.summary is not None else self.content


@dataclass
class BudgetAllocation:
    """Split of the usable token budget across content categories."""

    core_files: int
    documentation: int
    tests_config: int
    total: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class SummaryRecord:
    """Cached summary of a single file."""

    file_path: str
    summary: str
    original_tokens: int
    summary_tokens: int
    priority: int
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SummaryRecord':
        return cls(
            file_path=str(data['file_path']),
            summary=str(data['summary']),
            original_tokens=int(data['original_tokens']),
            summary_tokens=int(data['summary_tokens']),
            priority=int(data.get('priority', 50)),
            created_at=float(data.get('created_at', 0.0)),
        )


class Prioritization(BaseModel):
    """
    Relevance buckets for repository files.

    Produced either by the AI classifier or by the heuristic fallback. The
    AI output is untrusted, so every field is optional and entries that are
    not strings are dropped.
    """
    critical: List[str] = []
    important: List[str] = []
    skip: List[str] = []
    reasoning: str = ""

    @field_validator('critical', 'important', 'skip', mode='before')
    @classmethod
    def _coerce_paths(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple, set)):
            return []
        paths: List[str] = []
        for item in value:
            if isinstance(item, str) and item.strip() and item.strip() not in paths:
                paths.append(item.strip())
        return paths

    @field_validator('reasoning', mode='before')
    @classmethod
    def _coerce_reasoning(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    def mentioned(self) -> Set[str]:
        """All paths named in any bucket."""
        return set(self.critical) | set(self.important) | set(self.skip)
