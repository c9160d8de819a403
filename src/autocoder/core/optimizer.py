"""
Token-budget-aware content selection.

The ContentOptimizer reduces a repository snapshot to fit a model's input
budget (80% of its context window):

1. Estimate tokens for every text file.
2. If everything fits, return the snapshot untouched.
3. Otherwise ask the AI provider to bucket files into critical / important /
   skip, falling back to a keyword heuristic when that fails.
4. Fill the budget with critical files, then important files (summarized
   when too large), then everything else by priority.

The optimizer never raises for content or provider problems; the worst case
is a priority-ordered greedy selection.
"""

import asyncio
import json
import logging
import math
import os
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from .cache import FileSummaryCache, SummaryCache, make_cache_key
from .models import Config, FileRecord, Prioritization, SummaryRecord
from .summarizer import create_simple_summary, get_file_preview
from .tokenizer import PRIORITY_MEDIUM_LOW, TokenEstimator, get_budget

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = 'moonshotai/kimi-k2:free'

CODE_EXTENSIONS = ('.js', '.ts', '.py')

_JSON_FENCE = re.compile(r'```(?:json)?\s*(.*?)```', re.DOTALL | re.IGNORECASE)


def resolve_model_id(selected_model: Any) -> str:
    """
    Get a model identifier from a string, a mapping or an object with an
    ``id`` or ``name``. Anything else resolves to DEFAULT_MODEL_ID.
    """
    if isinstance(selected_model, str):
        return selected_model or DEFAULT_MODEL_ID
    for attr in ('id', 'name'):
        if isinstance(selected_model, Mapping):
            value = selected_model.get(attr)
        else:
            value = getattr(selected_model, attr, None)
        if isinstance(value, str) and value:
            return value
    return DEFAULT_MODEL_ID


def heuristic_prioritization(listings: List[Dict[str, Any]], user_prompt: Optional[str]) -> Prioritization:
    """
    Classify files without a model.

    Code files whose path mentions a word from the request are critical, as
    are entry points; other code is important; tests and reports are
    skipped; everything else is important.
    """
    keywords = [word for word in (user_prompt or '').lower().split() if len(word) > 3]
    critical: List[str] = []
    important: List[str] = []
    skip: List[str] = []

    for listing in listings:
        original_path = listing['path']
        path = original_path.lower()
        name = os.path.basename(path)
        is_code = path.endswith(CODE_EXTENSIONS)
        is_relevant = any(keyword in path for keyword in keywords)

        if is_relevant and is_code:
            critical.append(original_path)
        elif name == 'package.json' or name.startswith('main.') or name.startswith('index.'):
            critical.append(original_path)
        elif is_code:
            important.append(original_path)
        elif ('test' in path or 'coverage' in path or 'playwright-report' in path
              or '.spec.' in path or (path.endswith('.html') and not name == 'index.html')):
            skip.append(original_path)
        else:
            important.append(original_path)

    return Prioritization(
        critical=critical,
        important=important,
        skip=skip,
        reasoning='Heuristic-based prioritization fallback',
    )


def parse_prioritization(reply: Any) -> Optional[Prioritization]:
    """
    Parse a classification reply.

    Accepts bare JSON, JSON inside a code fence, or JSON surrounded by prose.
    Returns None when no usable object can be found.
    """
    if not isinstance(reply, str) or not reply.strip():
        return None

    candidates = [match.group(1) for match in _JSON_FENCE.finditer(reply)]
    candidates.append(reply)
    start, end = reply.find('{'), reply.rfind('}')
    if start != -1 and end > start:
        candidates.append(reply[start:end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate.strip())
        except (ValueError, TypeError):
            continue
        if not isinstance(data, dict):
            continue
        try:
            prioritization = Prioritization.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Classification reply has the wrong shape: {e}")
            continue
        if prioritization.mentioned():
            return prioritization
    return None


class ContentOptimizer:
    """Fits repository content into a model's token budget."""

    def __init__(self,
                 ai_provider: Any = None,
                 fallback_manager: Any = None,
                 cache: Optional[SummaryCache] = None,
                 config: Optional[Config] = None):
        """
        Args:
            ai_provider: Object with an async ``invoke(prompt, image_data, retries)``
                         used for file classification. Optional.
            fallback_manager: Receives the outcome of the classification call
                              when the selected model is a Model it manages.
            cache: Summary cache. Defaults to a file cache when
                   ``config.cache_dir`` is set, else no caching.
            config: Tunables; defaults to Config().
        """
        self.ai_provider = ai_provider
        self.fallback_manager = fallback_manager
        self.config = config or Config()
        if cache is None and self.config.cache_dir:
            cache = FileSummaryCache(self.config.cache_dir, ttl=self.config.summary_ttl)
        self.cache = cache
        self.last_report: Dict[str, Any] = {}

    # Entry point

    async def process_with_tokenization(self,
                                        snapshot: Mapping[str, Any],
                                        user_prompt: str,
                                        selected_model: Any = None) -> Mapping[str, Any]:
        """
        Reduce a repository snapshot to fit the selected model.

        Args:
            snapshot: Mapping of relative path to file content. A mapping
                      nested under a ``files`` key is also accepted.
            user_prompt: The user's change request.
            selected_model: Model, model id, or anything with ``id``/``name``.

        Returns:
            The original snapshot when it already fits, otherwise a new
            mapping of the selected paths to their content or summary.
        """
        if not isinstance(snapshot, Mapping):
            logger.warning(f"Repository snapshot is not a mapping: {type(snapshot).__name__}")
            return {}

        model_id = resolve_model_id(selected_model)
        estimator = TokenEstimator(model_id)
        model_limit = estimator.get_model_limit()
        budget = get_budget(model_limit)

        repo_files = snapshot.get('files') if isinstance(snapshot.get('files'), Mapping) else snapshot
        files: List[FileRecord] = []
        for file_path, content in repo_files.items():
            if not isinstance(file_path, str) or not isinstance(content, str):
                logger.debug(f"Skipping non-text entry: {file_path}")
                continue
            files.append(estimator.estimate_file(file_path, content))

        total_tokens = sum(f.tokens for f in files)
        logger.info(f"Found {len(files)} files totaling ~{total_tokens:,} tokens")
        logger.info(f"Model limit: {model_limit:,} tokens (budget {budget:,})")

        if total_tokens <= budget:
            logger.info("Repository fits within model limits, proceeding without optimization")
            self._record_report('none', files, files, budget, model_id)
            return snapshot

        try:
            prioritization, strategy = await self._prioritize(files, user_prompt, selected_model)
            logger.info(f"File prioritization: {prioritization.reasoning or 'completed'}")
            selected = await self.apply_prioritization(files, prioritization, budget, user_prompt)
        except Exception as e:
            logger.warning(f"Prioritization failed ({e}), falling back to heuristic filtering")
            strategy = 'fallback'
            selected = self.fallback_filtering(files, budget)

        if not selected:
            selected = await self._minimal_selection(files, budget, user_prompt)

        self._record_report(strategy, files, selected, budget, model_id)
        report = self.last_report
        logger.info(
            f"Selected {report['selected_files']} files, skipped {report['skipped_files']} "
            f"(~{report['optimized_tokens']:,} tokens, {report['summarized_files']} summarized)"
        )

        # Keep the snapshot's original ordering
        chosen = {f.file_path: f for f in selected}
        return {f.file_path: chosen[f.file_path].output_content for f in files if f.file_path in chosen}

    # Classification

    def build_file_listings(self, files: List[FileRecord]) -> List[Dict[str, Any]]:
        """Lightweight description of the first max_listing_files files."""
        return [
            {
                'path': f.file_path,
                'size': f.tokens,
                'type': f.type.value,
                'preview': get_file_preview(f.content, self.config.preview_chars),
            }
            for f in files[:self.config.max_listing_files]
        ]

    @staticmethod
    def build_prioritization_prompt(listings: List[Dict[str, Any]], user_prompt: str) -> str:
        file_lines = '\n'.join(f"- {f['path']} ({f['size']} tokens, {f['type']})" for f in listings)
        return (
            "You are a code analysis expert. Return only valid JSON.\n\n"
            f'Given this user request: "{user_prompt}"\n\n'
            "Analyze these repository files and identify which are most relevant:\n\n"
            f"{file_lines}\n\n"
            "Return JSON with files categorized by relevance:\n"
            "{\n"
            '  "critical": ["most_important_file1.js", "key_file2.py"],\n'
            '  "important": ["supporting_file1.js", "config.json"],\n'
            '  "skip": ["test_file.js", "coverage.html"],\n'
            '  "reasoning": "Brief explanation"\n'
            "}\n\n"
            f"Focus on files directly related to: {user_prompt}"
        )

    async def _prioritize(self,
                          files: List[FileRecord],
                          user_prompt: str,
                          selected_model: Any) -> Tuple[Prioritization, str]:
        listings = self.build_file_listings(files)

        if self.ai_provider is None or not callable(getattr(self.ai_provider, 'invoke', None)):
            logger.info("AI provider not available for prioritization, using heuristics")
            return heuristic_prioritization(listings, user_prompt), 'heuristic'

        prompt = self.build_prioritization_prompt(listings, user_prompt)
        try:
            reply = await asyncio.wait_for(
                self.ai_provider.invoke(prompt, None, 1),
                timeout=self.config.classification_timeout,
            )
        except Exception as e:
            error = e if str(e) else RuntimeError(f"{type(e).__name__} during file classification")
            logger.warning(f"AI prioritization error: {error}")
            self._report_model_result(selected_model, False, error)
            return heuristic_prioritization(listings, user_prompt), 'heuristic'

        self._report_model_result(selected_model, True)
        prioritization = parse_prioritization(reply)
        if prioritization is None:
            logger.warning("AI prioritization returned unusable output, using heuristics")
            return heuristic_prioritization(listings, user_prompt), 'heuristic'
        return prioritization, 'ai'

    def _report_model_result(self, selected_model: Any, success: bool, error: Optional[BaseException] = None) -> None:
        if self.fallback_manager is None:
            return
        states = getattr(self.fallback_manager, 'model_states', {})
        name = getattr(selected_model, 'name', None)
        if isinstance(name, str) and name in states:
            self.fallback_manager.handle_model_result(selected_model, success, error)

    # Selection

    async def apply_prioritization(self,
                                   files: List[FileRecord],
                                   prioritization: Prioritization,
                                   token_budget: int,
                                   user_prompt: str = '') -> List[FileRecord]:
        """
        Select files under token_budget following the classification.

        Critical files are taken whole while they fit. Important files are
        taken whole if they fit, else summarized when large enough. Skipped,
        unmentioned and left-over files then fill the remaining budget by
        descending priority.
        """
        by_path = {f.file_path: f for f in files}
        selected: Dict[str, FileRecord] = {}
        used_tokens = 0

        def find_file(path: str) -> Optional[FileRecord]:
            if path in by_path:
                return by_path[path]
            suffix = '/' + path.lstrip('./')
            for f in files:
                if f.file_path.endswith(suffix):
                    return f
            return None

        for path in prioritization.critical:
            file = find_file(path)
            if file is None or file.file_path in selected:
                continue
            if used_tokens + file.tokens <= token_budget:
                selected[file.file_path] = file
                used_tokens += file.tokens

        to_summarize: List[Tuple[FileRecord, int]] = []
        for path in prioritization.important:
            file = find_file(path)
            if file is None or file.file_path in selected:
                continue
            if used_tokens + file.tokens <= token_budget:
                selected[file.file_path] = file
                used_tokens += file.tokens
            elif file.tokens > self.config.summary_threshold_tokens:
                estimate = math.ceil(file.tokens * self.config.summary_ratio)
                if used_tokens + estimate <= token_budget and not any(f is file for f, _ in to_summarize):
                    to_summarize.append((file, estimate))
                    used_tokens += estimate

        used_tokens = await self._summarize_reserved(to_summarize, selected, used_tokens, token_budget, user_prompt)

        remaining = sorted(
            (f for f in files if f.file_path not in selected),
            key=lambda f: (-f.priority, f.tokens),
        )
        for file in remaining:
            if used_tokens + file.tokens <= token_budget:
                selected[file.file_path] = file
                used_tokens += file.tokens

        return list(selected.values())

    async def _summarize_reserved(self,
                                  reserved: List[Tuple[FileRecord, int]],
                                  selected: Dict[str, FileRecord],
                                  used_tokens: int,
                                  token_budget: int,
                                  user_prompt: str) -> int:
        """Summarize files that had budget reserved for them, in fixed-size batches."""
        batch_size = max(1, self.config.summary_batch_size)
        estimator = TokenEstimator()

        for start in range(0, len(reserved), batch_size):
            batch = reserved[start:start + batch_size]
            summaries = await asyncio.gather(*(self.summarize(file, user_prompt) for file, _ in batch))
            for (file, estimate), summary in zip(batch, summaries):
                summary_tokens = max(estimate, estimator.estimate_tokens(summary))
                if used_tokens - estimate + summary_tokens > token_budget:
                    logger.debug(f"Summary of {file.file_path} does not fit, dropping it")
                    used_tokens -= estimate
                    continue
                used_tokens += summary_tokens - estimate
                selected[file.file_path] = FileRecord(
                    file_path=file.file_path,
                    content=file.content,
                    tokens=file.tokens,
                    type=file.type,
                    priority=file.priority,
                    summary=summary,
                    summary_tokens=summary_tokens,
                    original_tokens=file.tokens,
                )
        return used_tokens

    async def summarize(self, file: FileRecord, user_prompt: str = '') -> str:
        """Summary of a file, served from the cache when possible."""
        key = make_cache_key(file.file_path, file.content, user_prompt)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Summary cache hit for {file.file_path}")
                return cached.summary

        summary = create_simple_summary(file)
        if self.cache is not None:
            self.cache.set(key, SummaryRecord(
                file_path=file.file_path,
                summary=summary,
                original_tokens=file.tokens,
                summary_tokens=math.ceil(file.tokens * self.config.summary_ratio),
                priority=file.priority,
            ))
        return summary

    @staticmethod
    def fallback_filtering(files: List[FileRecord], token_budget: int) -> List[FileRecord]:
        """Greedy selection by priority, preferring smaller files within a priority."""
        candidates = sorted(
            (f for f in files if f.priority >= PRIORITY_MEDIUM_LOW),
            key=lambda f: (-f.priority, f.tokens),
        )
        selected: List[FileRecord] = []
        used_tokens = 0
        for file in candidates:
            if used_tokens + file.tokens <= token_budget:
                selected.append(file)
                used_tokens += file.tokens

        logger.info(f"Heuristic selection: {len(selected)}/{len(files)} files ({used_tokens} tokens)")
        return selected

    async def _minimal_selection(self, files: List[FileRecord], token_budget: int, user_prompt: str) -> List[FileRecord]:
        """Pick at least one file: the smallest one that fits whole, else the most useful summary that fits."""
        for file in sorted(files, key=lambda f: (f.tokens, -f.priority)):
            if file.tokens <= token_budget:
                return [file]
        for file in sorted(files, key=lambda f: (-f.priority, f.tokens)):
            summary = await self.summarize(file, user_prompt)
            summary_tokens = TokenEstimator().estimate_tokens(summary)
            if summary_tokens <= token_budget:
                return [FileRecord(
                    file_path=file.file_path,
                    content=file.content,
                    tokens=file.tokens,
                    type=file.type,
                    priority=file.priority,
                    summary=summary,
                    summary_tokens=summary_tokens,
                    original_tokens=file.tokens,
                )]
        logger.warning("No file fits within the token budget, even summarized")
        return []

    # Reporting

    def _record_report(self,
                       strategy: str,
                       files: List[FileRecord],
                       selected: List[FileRecord],
                       budget: int,
                       model_id: str) -> None:
        self.last_report = {
            'model': model_id,
            'strategy': strategy,
            'budget': budget,
            'total_files': len(files),
            'selected_files': len(selected),
            'skipped_files': len(files) - len(selected),
            'summarized_files': sum(1 for f in selected if f.is_summarized),
            'original_tokens': sum(f.tokens for f in files),
            'optimized_tokens': sum(f.effective_tokens for f in selected),
        }

    def get_optimization_report(self) -> Dict[str, Any]:
        """Statistics about the most recent process_with_tokenization call."""
        return dict(self.last_report)
