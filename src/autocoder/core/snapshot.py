"""
Local repository snapshots.

A snapshot is a mapping of forward-slash relative path to file text, the
input the ContentOptimizer works on. Binary files, lockfiles, minified
bundles, hidden entries and oversized files are left out.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from tqdm import tqdm

from .models import Config

logger = logging.getLogger(__name__)

BINARY_SAMPLE_SIZE = 8192
ALLOWED_HIDDEN = {'.github', '.gitlab'}


class SnapshotBuilder:
    """Walks a local directory and reads its text files."""

    def __init__(self, config: Optional[Config] = None, show_progress: bool = False):
        self.config = config or Config()
        self.show_progress = show_progress
        self.errors: List[str] = []

    def should_skip_file(self, file_path: str) -> bool:
        """Check a file name against the binary extensions and skip patterns."""
        path = Path(file_path)
        if path.suffix.lower() in self.config.binary_extensions or path.name in self.config.binary_extensions:
            return True
        for pattern in self.config.skip_patterns:
            if pattern.startswith('*'):
                if path.name.endswith(pattern[1:]):
                    return True
            elif path.name == pattern:
                return True
        return False

    @staticmethod
    def is_binary_content(content: bytes) -> bool:
        """
        Binary detection on raw bytes: null bytes, or a high share of control
        characters in the leading sample.
        """
        sample = content[:BINARY_SAMPLE_SIZE]
        if b'\x00' in sample:
            return True
        try:
            sample.decode('utf-8')
            return False
        except UnicodeDecodeError:
            pass
        control = sum(1 for byte in sample if byte < 32 and byte not in (9, 10, 13))
        return control > len(sample) * 0.3

    def read_file_content(self, file_path: str) -> Tuple[Optional[str], Optional[str]]:
        """
        Read file content with encoding fallbacks.

        Returns:
            Tuple of (content, error_message); exactly one of them is None.
        """
        try:
            file_size = os.path.getsize(file_path)
            if file_size > self.config.max_file_size:
                return None, f"File too large ({file_size:,} bytes)"

            with open(file_path, 'rb') as f:
                raw_content = f.read()

            if self.is_binary_content(raw_content):
                return None, "Binary file"

            for encoding in self.config.encoding_fallbacks:
                try:
                    return raw_content.decode(encoding), None
                except UnicodeDecodeError:
                    continue

            return None, "Unable to decode file with available encodings"

        except PermissionError:
            return None, "Permission denied"
        except OSError as e:
            return None, f"Error reading file: {e}"

    def _walk(self, repo_path: str) -> List[str]:
        paths: List[str] = []
        for root, dirs, files in os.walk(repo_path):
            dirs[:] = sorted(
                d for d in dirs
                if d not in self.config.excluded_dirs
                and (not d.startswith('.') or d in ALLOWED_HIDDEN)
                and not os.path.islink(os.path.join(root, d))
            )
            for name in sorted(files):
                if name.startswith('.'):
                    continue
                full_path = os.path.join(root, name)
                if os.path.islink(full_path) or self.should_skip_file(name):
                    continue
                paths.append(full_path)
        return paths

    def build(self, repo_path: str) -> Dict[str, str]:
        """
        Build a snapshot of a local directory.

        Raises:
            ValueError: If repo_path is not a directory.
        """
        if not os.path.isdir(repo_path):
            raise ValueError(f"Path is not a directory: {repo_path}")

        root = os.path.abspath(repo_path)
        self.errors = []
        snapshot: Dict[str, str] = {}

        file_paths = self._walk(root)
        for full_path in tqdm(file_paths, desc="Reading files", disable=not self.show_progress):
            rel_path = Path(os.path.relpath(full_path, root)).as_posix()
            content, error = self.read_file_content(full_path)
            if content is None:
                logger.debug(f"Skipping {rel_path}: {error}")
                if error != "Binary file":
                    self.errors.append(f"{rel_path}: {error}")
                continue
            snapshot[rel_path] = content

        logger.info(f"Snapshot of {os.path.basename(root)}: {len(snapshot)} text files")
        return snapshot


def build_snapshot(repo_path: str, config: Optional[Config] = None, show_progress: bool = False) -> Dict[str, str]:
    """Convenience wrapper around SnapshotBuilder.build."""
    return SnapshotBuilder(config, show_progress=show_progress).build(repo_path)
