"""Discovery of test files across Python, Rust and JavaScript/TypeScript."""

from __future__ import annotations

import asyncio
import fnmatch
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath


@dataclass(frozen=True)
class TestPattern:
    """How one ecosystem lays out its tests."""
    __test__ = False

    language: str
    extensions: tuple[str, ...]
    directories: tuple[str, ...]
    file_patterns: tuple[str, ...]


DEFAULT_PATTERNS: tuple[TestPattern, ...] = (
    TestPattern("python", ("py",), ("tests", "test"), ("test_*.py", "*_test.py")),
    TestPattern("rust", ("rs",), ("tests",), ("*.rs",)),
    TestPattern(
        "javascript",
        ("js", "ts"),
        ("tests", "test", "__tests__"),
        ("*.test.js", "*.test.ts", "*.spec.js", "*.spec.ts"),
    ),
)

SKIP_DIRS = frozenset({
    "node_modules", "target", "build", "dist", "__pycache__", ".git", ".venv", "venv",
})


def should_skip_directory(name: str) -> bool:
    return name.startswith(".") or name in SKIP_DIRS


def is_test_file(rel_path: str | PurePosixPath, patterns=DEFAULT_PATTERNS) -> bool:
    """True if the extension belongs to an ecosystem and the file sits in one
    of its test directories or matches one of its filename patterns."""
    path = PurePosixPath(rel_path)
    extension = path.suffix.lstrip(".")
    if not extension:
        return False
    directories = path.parts[:-1]
    for pattern in patterns:
        if extension not in pattern.extensions:
            continue
        if any(d in pattern.directories for d in directories):
            return True
        if any(fnmatch.fnmatchcase(path.name, p) for p in pattern.file_patterns):
            return True
    return False


def discover_tests_sync(root: str | Path, patterns=DEFAULT_PATTERNS) -> list[str]:
    root = Path(root)
    found = set()
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if not should_skip_directory(d)]
        rel_dir = Path(dirpath).relative_to(root)
        for filename in filenames:
            rel = (rel_dir / filename).as_posix()
            if is_test_file(rel, patterns):
                found.add(rel)
    return sorted(found)


async def discover_tests(root: str | Path, patterns=DEFAULT_PATTERNS) -> list[str]:
    """All test files under root as sorted POSIX paths relative to root."""
    return await asyncio.to_thread(discover_tests_sync, root, patterns)
