import os
import time
from autocoder.core.cache import FileSummaryCache, InMemorySummaryCache, make_cache_key
from autocoder.core.models import SummaryRecord


def make_summary(path="src/app.js"):
    return SummaryRecord(file_path=path, summary="# summary", original_tokens=3000,
                         summary_tokens=900, priority=80)


class TestCacheKey:
    def test_key_depends_on_path_content_and_prompt(self):
        base = make_cache_key("a.js", "content", "prompt")

        assert base == make_cache_key("a.js", "content", "prompt")
        assert base != make_cache_key("b.js", "content", "prompt")
        assert base != make_cache_key("a.js", "other", "prompt")
        assert base != make_cache_key("a.js", "content", "other prompt")
        assert len(base) == 64

    def test_parts_do_not_run_together(self):
        assert make_cache_key("ab", "c", "") != make_cache_key("a", "bc", "")

    def test_missing_prompt(self):
        assert make_cache_key("a.js", "x", None) == make_cache_key("a.js", "x", "")


class TestInMemorySummaryCache:
    def test_get_set_and_stats(self, clock):
        cache = InMemorySummaryCache(ttl=60, clock=clock)
        record = make_summary()

        assert cache.get("k") is None
        cache.set("k", record)

        assert cache.get("k") == record
        assert cache.get_stats() == {"cache_size": 1, "hits": 1, "misses": 1}

    def test_entries_expire(self, clock):
        cache = InMemorySummaryCache(ttl=60, clock=clock)
        cache.set("k", make_summary())

        clock.advance(61)

        assert cache.get("k") is None
        assert cache.get_stats()["cache_size"] == 0

    def test_clear(self, clock):
        cache = InMemorySummaryCache(clock=clock)
        cache.set("k", make_summary())

        cache.clear()

        assert cache.get("k") is None


class TestFileSummaryCache:
    def test_round_trip(self, temp_workspace):
        cache = FileSummaryCache(str(temp_workspace / "cache"))
        record = make_summary()

        cache.set("abc", record)

        assert (temp_workspace / "cache" / "abc.json").exists()
        assert cache.get("abc") == record
        assert cache.get("missing") is None

    def test_stale_entry_is_a_miss(self, temp_workspace):
        cache = FileSummaryCache(str(temp_workspace), ttl=60)
        cache.set("abc", make_summary())
        old = time.time() - 3600
        os.utime(temp_workspace / "abc.json", (old, old))

        assert cache.get("abc") is None

    def test_corrupt_entry_is_a_miss(self, temp_workspace):
        cache = FileSummaryCache(str(temp_workspace))
        (temp_workspace / "abc.json").write_text("{not json")
        (temp_workspace / "def.json").write_text('{"file_path": "a.js"}')

        assert cache.get("abc") is None
        assert cache.get("def") is None

    def test_write_failure_is_logged(self, temp_workspace, caplog):
        blocker = temp_workspace / "blocker"
        blocker.write_text("a file where the cache directory should be")
        cache = FileSummaryCache(str(blocker / "cache"))

        with caplog.at_level("WARNING"):
            cache.set("abc", make_summary())

        assert "Failed to write summary cache entry" in caplog.text
        assert cache.get("abc") is None
