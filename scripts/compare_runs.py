#!/usr/bin/env python3
"""Compare two saved evaluation runs."""

from __future__ import annotations

import argparse
import json

from agent_eval.stats import (
    ComparisonResult,
    EvaluationResults,
    check_sample_size,
    cohens_d,
    interpret_effect_size,
)
from agent_eval.storage import load_run


def main() -> None:
    parser = argparse.ArgumentParser(description="A/B comparison of two evaluation runs")
    parser.add_argument("baseline", help="Baseline run JSON")
    parser.add_argument("candidate", help="Candidate run JSON")
    parser.add_argument("--json", action="store_true", help="Print the comparison as JSON")
    args = parser.parse_args()

    baseline = EvaluationResults.from_run(load_run(args.baseline))
    candidate = EvaluationResults.from_run(load_run(args.candidate))
    comparison = ComparisonResult.compare(baseline, candidate)

    if args.json:
        print(json.dumps(comparison.to_dict(), indent=2, default=str))
        return

    print(comparison.summary())
    d = cohens_d(
        [1.0 if t.solved else 0.0 for t in baseline.tasks],
        [1.0 if t.solved else 0.0 for t in candidate.tasks],
    )
    n = min(len(baseline.tasks), len(candidate.tasks))
    print(f"  Effect size (accuracy): d={d:.2f} ({interpret_effect_size(d)})")
    if not check_sample_size(n, abs(d)):
        print(f"  Warning: {n} tasks per arm is too few to detect this effect reliably")


if __name__ == "__main__":
    main()
