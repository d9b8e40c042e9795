"""Tests for test discovery, change mapping and test command selection."""

from pathlib import Path

import pytest

from agent_eval.test_selection import (
    DependencyMapper,
    TestSelection,
    TestSelector,
    build_test_command,
    discover_tests,
    is_test_file,
    map_files_to_tests,
)
from agent_eval.test_selection.mapper import names_related, path_similarity


def _touch(root: Path, rel: str, text: str = "") -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


@pytest.fixture
def project(tmp_path):
    for rel in [
        "src/foo.py",
        "src/bar.py",
        "tests/test_foo.py",
        "tests/test_bar.py",
        "tests/helpers.py",
        "web/app.spec.ts",
        "node_modules/pkg/index.test.js",
        ".cache/test_hidden.py",
        "README.md",
    ]:
        _touch(tmp_path, rel)
    return tmp_path


def test_is_test_file():
    assert is_test_file("tests/test_foo.py")
    assert is_test_file("pkg/foo_test.py")
    assert is_test_file("tests/helpers.py")
    assert is_test_file("src/__tests__/widget.js")
    assert is_test_file("web/app.spec.ts")
    assert not is_test_file("src/foo.py")
    assert not is_test_file("tests/fixtures.json")
    assert not is_test_file("Makefile")


@pytest.mark.asyncio
async def test_discover_skips_vendored_and_hidden_dirs(project):
    tests = await discover_tests(project)
    assert tests == [
        "tests/helpers.py",
        "tests/test_bar.py",
        "tests/test_foo.py",
        "web/app.spec.ts",
    ]


def test_mapper_selects_test_by_name():
    selected = map_files_to_tests(["src/foo.py"], ["tests/test_foo.py", "tests/test_bar.py"])
    assert selected == ["tests/test_foo.py"]


def test_mapper_changed_test_maps_to_itself():
    mapper = DependencyMapper()
    assert mapper.map_files_to_tests(["tests/test_bar.py"], ["tests/test_foo.py", "tests/test_bar.py"]) == [
        "tests/test_bar.py"
    ]


def test_mapper_uses_directory_similarity():
    tests = ["pkg/core/tests/test_engine.py", "other/tests/test_misc.py"]
    assert map_files_to_tests(["pkg/core/cache.py"], tests) == ["pkg/core/tests/test_engine.py"]
    assert map_files_to_tests(["pkg/core/cache.py"], tests, similarity_threshold=1.1) == []


def test_name_and_path_helpers():
    assert names_related("src/widget.ts", "web/widget.spec.ts")
    assert names_related("lib/parse.py", "tests/parse_test.py")
    assert not names_related("src/foo.py", "tests/test_foobar.py")

    assert path_similarity("a/b/c.py", "a/b/tests/t.py") == 1.0
    assert path_similarity("a/x/c.py", "a/b/t.py") == 0.5
    assert path_similarity("setup.py", "tests/test_x.py") == 0.0


@pytest.mark.asyncio
async def test_selector_narrows_to_related_tests(project):
    selection = await TestSelector().select_tests(project, ["src/foo.py"])
    assert not selection.run_all
    assert selection.selected_tests == ["tests/test_foo.py"]
    assert selection.count == 1
    assert selection.reduction_percentage == 75.0
    assert set(selection.selected_tests) <= set(selection.all_tests)


@pytest.mark.asyncio
async def test_selector_accepts_absolute_paths(project):
    selection = await TestSelector().select_tests(project, [str(project / "src" / "bar.py")])
    assert selection.changed_files == ["src/bar.py"]
    assert selection.selected_tests == ["tests/test_bar.py"]


@pytest.mark.asyncio
async def test_selector_falls_back_to_whole_suite(project):
    nothing_changed = await TestSelector().select_tests(project, [])
    assert nothing_changed.run_all
    assert nothing_changed.selected_tests == nothing_changed.all_tests

    unmapped = await TestSelector().select_tests(project, ["README.md"])
    assert unmapped.run_all
    assert unmapped.count == 4


@pytest.mark.asyncio
async def test_selector_without_tests(tmp_path):
    _touch(tmp_path, "main.py")
    selection = await TestSelector().select_tests(tmp_path, ["main.py"])
    assert selection.run_all
    assert not selection.has_tests
    assert build_test_command(selection) == ""


@pytest.mark.asyncio
async def test_selector_outside_git_repo_runs_everything(project):
    selection = await TestSelector().select_tests_from_git(project)
    assert selection.run_all
    assert selection.changed_files == []


def test_build_test_command():
    python = TestSelection(["src/foo.py"], ["tests/test_foo.py"], ["tests/test_foo.py", "tests/test_bar.py"])
    assert build_test_command(python) == "pytest tests/test_foo.py -v"
    assert build_test_command(TestSelection.everything(["tests/test_foo.py"])) == "pytest -v"

    rust = TestSelection(selected_tests=["tests/integration.rs", "tests/api.rs"])
    assert build_test_command(rust) == "cargo test api integration"
    assert build_test_command(TestSelection.everything(["tests/api.rs"])) == "cargo test"

    js = TestSelection(selected_tests=["web/b.test.js", "web/a.spec.ts"])
    assert build_test_command(js) == "npm test -- web/a.spec.ts web/b.test.js"
    assert build_test_command(TestSelection.everything(["web/a.spec.ts"])) == "npm test"

    mixed = TestSelection(selected_tests=["web/a.spec.ts", "tests/test_x.py"])
    assert build_test_command(mixed) == "pytest tests/test_x.py -v"

    assert build_test_command(TestSelection()) == ""
