"""Test selection from changed files, and the command that runs it."""

from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from .discovery import discover_tests
from .mapper import DependencyMapper

logger = logging.getLogger(__name__)


@dataclass
class TestSelection:
    __test__ = False

    changed_files: list[str] = field(default_factory=list)
    selected_tests: list[str] = field(default_factory=list)
    all_tests: list[str] = field(default_factory=list)
    run_all: bool = False

    @classmethod
    def everything(cls, all_tests: list[str], changed_files: list[str] | None = None) -> TestSelection:
        """Fallback selection that runs the whole suite."""
        return cls(
            changed_files=list(changed_files or []),
            selected_tests=list(all_tests),
            all_tests=list(all_tests),
            run_all=True,
        )

    @property
    def tests_to_run(self) -> list[str]:
        return self.selected_tests

    @property
    def has_tests(self) -> bool:
        return bool(self.selected_tests)

    @property
    def count(self) -> int:
        return len(self.selected_tests)

    @property
    def reduction_percentage(self) -> float:
        """Share of the suite skipped by this selection."""
        if not self.all_tests:
            return 0.0
        skipped = len(self.all_tests) - len(self.selected_tests)
        return skipped / len(self.all_tests) * 100


class TestSelector:
    """Narrows a test run to the tests related to a change.

    Whenever nothing can be selected with confidence the selection falls back
    to the whole suite rather than running zero tests.
    """
    __test__ = False

    def __init__(self, mapper: DependencyMapper | None = None):
        self.mapper = mapper or DependencyMapper()

    async def select_tests(self, root: str | Path, changed: list[str]) -> TestSelection:
        all_tests = await discover_tests(root)
        changed = [_relative(root, c) for c in changed]
        if not changed or not all_tests:
            return TestSelection.everything(all_tests, changed)

        selected = self.mapper.map_files_to_tests(changed, all_tests)
        if not selected:
            logger.debug("No tests map to %d changed files, running all", len(changed))
            return TestSelection.everything(all_tests, changed)
        return TestSelection(changed, selected, all_tests)

    async def select_tests_from_git(self, root: str | Path, base_ref: str = "HEAD") -> TestSelection:
        changed = await changed_files_from_git(root, base_ref)
        return await self.select_tests(root, changed)


async def changed_files_from_git(root: str | Path, base_ref: str = "HEAD") -> list[str]:
    """Files changed relative to base_ref; empty if git fails."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "git", "diff", "--name-only", base_ref,
            cwd=str(root),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.debug("Could not run git in %s: %s", root, e)
        return []
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        logger.debug("git diff failed in %s: %s", root, stderr.decode(errors="replace").strip())
        return []
    return [line for line in stdout.decode().splitlines() if line.strip()]


def _relative(root: str | Path, path: str) -> str:
    p = Path(path)
    if p.is_absolute():
        try:
            return p.relative_to(Path(root)).as_posix()
        except ValueError:
            return p.as_posix()
    return PurePosixPath(path).as_posix()


def build_test_command(selection: TestSelection) -> str:
    """One invocation for the selected tests, preferring Python, then Rust, then JS/TS."""
    tests = selection.tests_to_run
    if not tests:
        return ""

    by_ext: dict[str, list[str]] = {}
    for test in tests:
        by_ext.setdefault(PurePosixPath(test).suffix, []).append(test)

    if ".py" in by_ext:
        if selection.run_all:
            return "pytest -v"
        return " ".join(["pytest", *map(shlex.quote, by_ext[".py"]), "-v"])
    if ".rs" in by_ext:
        if selection.run_all:
            return "cargo test"
        stems = sorted({PurePosixPath(t).stem for t in by_ext[".rs"]})
        return " ".join(["cargo test", *map(shlex.quote, stems)])
    js = by_ext.get(".js", []) + by_ext.get(".ts", [])
    if js and not selection.run_all:
        return " ".join(["npm test --", *map(shlex.quote, sorted(js))])
    return "npm test"
