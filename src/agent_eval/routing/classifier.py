"""Heuristic difficulty classification of tasks."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from agent_eval.benchmark.base import Task


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


FILE_EXTENSIONS = (".py", ".rs", ".js", ".ts")
ARCHITECTURE_KEYWORDS = ("architecture", "refactor", "redesign", "performance")
SIMPLE_KEYWORDS = ("fix typo", "rename", "update comment")


@dataclass(frozen=True)
class TaskSignals:
    length: int
    file_mentions: int
    has_simple_keyword: bool
    has_architecture_keyword: bool


def extract_signals(problem_statement: str) -> TaskSignals:
    text = problem_statement.lower()
    return TaskSignals(
        length=len(problem_statement),
        file_mentions=sum(text.count(ext) for ext in FILE_EXTENSIONS),
        has_simple_keyword=any(k in text for k in SIMPLE_KEYWORDS),
        has_architecture_keyword=any(k in text for k in ARCHITECTURE_KEYWORDS),
    )


class TaskClassifier:
    """First matching rule wins; ambiguous tasks default to Easy."""

    def classify(self, task: Task) -> Difficulty:
        return self.classify_text(task.problem_statement)

    def classify_text(self, problem_statement: str) -> Difficulty:
        s = extract_signals(problem_statement)
        if s.has_simple_keyword and s.file_mentions <= 1 and s.length < 200:
            return Difficulty.EASY
        if s.has_architecture_keyword or s.file_mentions > 5 or s.length > 1000:
            return Difficulty.HARD
        if s.file_mentions > 2 or s.length > 500:
            return Difficulty.MEDIUM
        return Difficulty.EASY
