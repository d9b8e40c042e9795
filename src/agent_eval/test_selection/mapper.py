"""Maps changed source files onto the tests likely to exercise them."""

from __future__ import annotations

from pathlib import PurePosixPath


def names_related(source: str, test: str) -> bool:
    """Naming conventions linking a test file to a source file.

    test_foo.py, foo_test.py, foo.test.js and foo.spec.ts all relate to foo.
    """
    s = PurePosixPath(source).stem
    t = PurePosixPath(test).stem
    return (
        t.removeprefix("test_") == s
        or t.removesuffix("_test") == s
        or t == f"test_{s}"
        or t == f"{s}_test"
        or t.replace(".test", "") == s
        or t.replace(".spec", "") == s
    )


def path_similarity(a: str, b: str) -> float:
    """Shared leading directories over the shallower directory depth."""
    parts_a = PurePosixPath(a).parts
    parts_b = PurePosixPath(b).parts
    if not parts_a or not parts_b:
        return 0.0
    depth = min(len(parts_a) - 1, len(parts_b) - 1)
    common = 0
    for i in range(depth):
        if parts_a[i] != parts_b[i]:
            break
        common += 1
    return common / max(depth, 1)


class DependencyMapper:
    def __init__(self, similarity_threshold: float = 0.3):
        self.similarity_threshold = similarity_threshold

    def map_files_to_tests(self, changed: list[str], all_tests: list[str]) -> list[str]:
        known_tests = set(all_tests)
        affected = set()
        for changed_file in changed:
            if changed_file in known_tests:
                affected.add(changed_file)
                continue
            for test in all_tests:
                if names_related(changed_file, test):
                    affected.add(test)
                elif path_similarity(changed_file, test) >= self.similarity_threshold:
                    affected.add(test)
        return sorted(affected)


def map_files_to_tests(
    changed: list[str],
    all_tests: list[str],
    similarity_threshold: float = 0.3,
) -> list[str]:
    return DependencyMapper(similarity_threshold).map_files_to_tests(changed, all_tests)
