"""Selection of the tests relevant to a change."""

from .discovery import discover_tests, is_test_file
from .mapper import DependencyMapper, map_files_to_tests
from .selector import TestSelection, TestSelector, build_test_command, changed_files_from_git
