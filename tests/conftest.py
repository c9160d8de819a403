import pytest
import tempfile
import shutil
from pathlib import Path
from typing import Callable, List, Optional, Union

from autocoder.ai.provider import AIProvider
from autocoder.core.models import Config


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(AIProvider):
    """
    Scripted provider. Each reply is returned in order; exceptions in the
    script are raised instead. A callable script receives the prompt.
    """

    def __init__(self, replies: Union[List, Callable[[str], str], None] = None, model: str = "fake/model"):
        self.model = model
        self.replies = replies if replies is not None else []
        self.calls: List[dict] = []

    async def invoke(self, prompt: str, image_data: Optional[str] = None, retries: int = 3) -> str:
        self.calls.append({"prompt": prompt, "image_data": image_data, "retries": retries})
        if callable(self.replies):
            reply = self.replies(prompt)
        else:
            if not self.replies:
                raise AssertionError("FakeProvider ran out of replies")
            reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture
def temp_workspace():
    """Create a temporary directory for test files."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def sample_repo(temp_workspace):
    """Create a sample repository structure for testing."""
    repo_root = temp_workspace / "sample_repo"
    repo_root.mkdir()

    (repo_root / "src").mkdir()
    (repo_root / "src" / "utils").mkdir()
    (repo_root / "tests").mkdir()
    (repo_root / ".git").mkdir()
    (repo_root / "node_modules").mkdir()

    (repo_root / "README.md").write_text("# Sample Repository\n\nTest repository for autocoder")
    (repo_root / "package.json").write_text('{"name": "sample", "main": "src/index.js"}')
    (repo_root / "package-lock.json").write_text('{"lockfileVersion": 3}')
    (repo_root / "src" / "index.js").write_text("const helper = require('./utils/helper');\nmodule.exports = helper;")
    (repo_root / "src" / "utils" / "helper.js").write_text("function helper() {\n  return 42;\n}\nmodule.exports = helper;")
    (repo_root / "tests" / "helper.test.js").write_text("test('helper', () => expect(helper()).toBe(42));")
    (repo_root / ".env").write_text("SECRET=1")
    (repo_root / ".git" / "config").write_text("[core]\n    repositoryformatversion = 0")
    (repo_root / "node_modules" / "left-pad.js").write_text("module.exports = () => {};")

    # Binary files
    (repo_root / "logo.png").write_bytes(b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR')
    (repo_root / "data.bin").write_bytes(b'\x00\x01\x02\x03binary')

    return repo_root


@pytest.fixture
def config():
    """Config that ignores the environment."""
    return Config(openrouter_api_key="", models="", cache_dir=None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_provider_factory():
    return FakeProvider


@pytest.fixture
def large_snapshot():
    """100 JavaScript files of 2500 characters each (~62,500 tokens)."""
    return {f"src/module_{i:03d}.js": "x" * 2500 for i in range(100)}
