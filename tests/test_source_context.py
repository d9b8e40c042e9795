"""Tests for source parsing and the mtime-keyed context cache."""

import os
import threading

import pytest

from agent_eval.source_context import ContextCache, SourceContextBuilder, parse_source

SAMPLE = '''"""Module doc."""
import os
from .utils import helper


class Cache(dict):
    """Simple cache.

    More detail.
    """

    def get_item(self, key: str) -> str:
        return self[key]


async def fetch(url, timeout=5):
    return url
'''


def test_cache_hit_and_miss_by_mtime(tmp_path):
    cache = ContextCache(capacity=4)
    path = tmp_path / "a.py"

    assert cache.get(path, 100) is None
    cache.insert(path, 100, "parsed-v1")
    assert cache.get(path, 100) == "parsed-v1"
    assert cache.get(path, 101) is None
    assert cache.hits == 1
    assert cache.misses == 2
    assert cache.hit_rate == pytest.approx(1 / 3)


def test_cache_evicts_least_recently_used(tmp_path):
    cache = ContextCache(capacity=2)
    cache.insert(tmp_path / "a.py", 1, "a")
    cache.insert(tmp_path / "b.py", 1, "b")
    assert cache.get(tmp_path / "a.py", 1) == "a"

    cache.insert(tmp_path / "c.py", 1, "c")
    assert len(cache) == 2
    assert cache.get(tmp_path / "b.py", 1) is None
    assert cache.get(tmp_path / "a.py", 1) == "a"
    assert cache.get(tmp_path / "c.py", 1) == "c"

    cache.clear()
    assert len(cache) == 0


def test_cache_rejects_zero_capacity():
    with pytest.raises(ValueError):
        ContextCache(capacity=0)


def test_cache_shared_between_threads(tmp_path):
    cache = ContextCache(capacity=50)

    def worker(n):
        for i in range(200):
            cache.insert(tmp_path / f"f{i % 80}.py", n, i)
            cache.get(tmp_path / f"f{(i + 1) % 80}.py", n)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(cache) == 50
    assert cache.hits + cache.misses == 800


def test_parse_python_symbols_and_imports():
    context = parse_source("pkg/cache.py", SAMPLE)
    assert context.language == "python"
    assert context.parse_error is None
    assert context.imports == ["os", ".utils"]

    names = [(s.name, s.kind) for s in context.symbols]
    assert names == [("Cache", "class"), ("Cache.get_item", "method"), ("fetch", "function")]

    cls, method, func = context.symbols
    assert cls.signature == "class Cache(dict)"
    assert cls.docstring == "Simple cache."
    assert method.signature == "def get_item(self, key: str) -> str"
    assert func.signature == "async def fetch(url, timeout=5)"
    assert cls.line_start == 6


def test_parse_errors_and_other_languages():
    broken = parse_source("bad.py", "def broken(:\n")
    assert broken.parse_error is not None
    assert broken.symbols == []

    rust = parse_source("src/lib.rs", "fn main() {}")
    assert rust.language == "rust"
    assert rust.symbols == []


def test_builder_reuses_until_file_changes(tmp_path):
    path = tmp_path / "mod.py"
    path.write_text("def one():\n    pass\n")
    builder = SourceContextBuilder(ContextCache(capacity=10))

    first = builder.file_context(path)
    assert builder.file_context(path) is first
    assert builder.cache.hits == 1

    path.write_text("def one():\n    pass\n\n\ndef two():\n    pass\n")
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

    second = builder.file_context(path)
    assert second is not first
    assert [s.name for s in second.symbols] == ["one", "two"]
    assert builder.file_context(tmp_path / "missing.py") is None


def test_builder_render_outline(tmp_path):
    (tmp_path / "cache.py").write_text(SAMPLE)
    outline = SourceContextBuilder().render(tmp_path, ["cache.py", "missing.py"])
    assert outline.startswith("## cache.py (python)")
    assert "imports: os, .utils" in outline
    assert "def get_item(self, key: str) -> str" in outline
    assert "# Simple cache." in outline
    assert "missing.py" not in outline
