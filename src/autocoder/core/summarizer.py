"""Cheap, deterministic summaries for files that are too large to send whole."""

import re
from typing import List

from .models import FileRecord, FileType

MAX_SECTION_LINES = 10
MAX_PREVIEW_LINES = 20

_JS_IMPORT = re.compile(r'^(import|require)')
_JS_FUNCTION = re.compile(r'^(function|const|let|var).+=>|^(function|async function)')
_JS_EXPORT = re.compile(r'^(export|module\.exports)')
_PY_IMPORT = re.compile(r'^(import|from)\s')
_PY_DEFINITION = re.compile(r'^(async\s+def|def|class)\s')


def _matching(lines: List[str], pattern: re.Pattern) -> List[str]:
    return [line for line in lines if pattern.search(line.strip())]


def create_simple_summary(file: FileRecord) -> str:
    """
    Summarize a file by pulling out its structural lines.

    JavaScript/TypeScript keeps imports, function declarations and exports;
    Python keeps imports and top-level definitions; documentation keeps its
    headings. Anything else gets a preview of its first lines.
    """
    lines = file.content.split('\n')
    summary = [f"# {file.file_path} ({file.tokens} tokens → summary)"]

    if file.type == FileType.JAVASCRIPT:
        imports = _matching(lines, _JS_IMPORT)
        functions = _matching(lines, _JS_FUNCTION)
        exports = _matching(lines, _JS_EXPORT)
        if imports:
            summary.extend(['\n## Imports:', *imports[:MAX_SECTION_LINES]])
        if functions:
            summary.extend(['\n## Functions:', *functions[:MAX_SECTION_LINES]])
        if exports:
            summary.extend(['\n## Exports:', *exports[:MAX_SECTION_LINES]])

    elif file.type == FileType.PYTHON:
        imports = _matching(lines, _PY_IMPORT)
        definitions = [line for line in lines if _PY_DEFINITION.search(line)]
        if imports:
            summary.extend(['\n## Imports:', *imports[:MAX_SECTION_LINES]])
        if definitions:
            summary.extend(['\n## Definitions:', *definitions[:MAX_SECTION_LINES]])

    elif file.type == FileType.DOCUMENTATION:
        headers = [line for line in lines if line.strip().startswith('#')]
        summary.extend(['\n## Structure:', *headers[:MAX_SECTION_LINES]])

    else:
        summary.append('\n## Content Preview:')
        summary.extend(lines[:MAX_PREVIEW_LINES])
        if len(lines) > MAX_PREVIEW_LINES:
            summary.append('...[truncated]')

    return '\n'.join(summary)


def get_file_preview(content: str, max_chars: int = 100) -> str:
    """First max_chars characters of content, cut to at most 5 lines."""
    return '\n'.join(content[:max_chars].split('\n')[:5])
