"""Core components for autocoder."""

from .models import Config, FileRecord, FileType, BudgetAllocation, SummaryRecord, Prioritization
from .tokenizer import TokenEstimator, get_budget
from .cache import SummaryCache, InMemorySummaryCache, FileSummaryCache
from .optimizer import ContentOptimizer
from .snapshot import SnapshotBuilder, build_snapshot

__all__ = [
    "Config",
    "FileRecord",
    "FileType",
    "BudgetAllocation",
    "SummaryRecord",
    "Prioritization",
    "TokenEstimator",
    "get_budget",
    "SummaryCache",
    "InMemorySummaryCache",
    "FileSummaryCache",
    "ContentOptimizer",
    "SnapshotBuilder",
    "build_snapshot",
]
