"""A/B comparison of evaluation runs.

Compares a baseline run against a candidate (for example two milestones)
and turns the deltas and their significance into a recommendation.
Accuracy deltas are in percentage points; cost and duration deltas are
reported both absolutely and relative to the baseline.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Sequence

import numpy as np
from scipy import stats

from agent_eval.metrics import AggregateMetrics, TaskMetrics

SIGNIFICANCE_LEVEL = 0.05


class Recommendation(str, Enum):
    ADOPT = "adopt"
    REJECT = "reject"
    NEED_MORE_DATA = "need_more_data"
    INVESTIGATE = "investigate"


@dataclass
class EvaluationResults:
    """Per-task outcomes of one configuration."""
    name: str
    tasks: list[TaskMetrics] = field(default_factory=list)

    @property
    def aggregate(self) -> AggregateMetrics:
        return AggregateMetrics.from_tasks(self.tasks)

    @property
    def accuracy_pct(self) -> float:
        return self.aggregate.accuracy * 100

    @classmethod
    def from_run(cls, run: Any, name: str | None = None) -> EvaluationResults:
        """Flatten an EvaluationRun into one sample of task metrics."""
        tasks = [r.metrics for bench in run.benchmarks for r in bench.results]
        return cls(name=name or run.run_id, tasks=tasks)


@dataclass
class TTestResult:
    t_stat: float
    p_value: float
    degrees_of_freedom: float


@dataclass
class DeltaMetrics:
    """Candidate minus baseline."""
    accuracy: float  # percentage points
    cost_usd: float
    cost_pct: float
    duration_ms: float
    duration_pct: float


@dataclass
class SignificanceTest:
    accuracy_significant: bool
    accuracy_p_value: float
    accuracy_t_stat: float
    cost_significant: bool
    cost_p_value: float
    confidence: float = 1 - SIGNIFICANCE_LEVEL


def welch_t_test(sample_a: Sequence[float], sample_b: Sequence[float]) -> TTestResult:
    """Two-sided Welch t-test of b against a.

    Degenerate samples (fewer than two values, or zero variance on both
    sides) are reported as not significant.
    """
    if len(sample_a) < 2 or len(sample_b) < 2:
        return TTestResult(0.0, 1.0, 0.0)
    result = stats.ttest_ind(sample_b, sample_a, equal_var=False)
    t_stat = float(result.statistic)
    p_value = float(result.pvalue)
    if math.isnan(p_value):
        return TTestResult(0.0, 1.0, 0.0)
    df = float(getattr(result, "df", 0.0))
    return TTestResult(t_stat, p_value, df)


def _pct_change(baseline: float, candidate: float) -> float:
    return (candidate - baseline) / baseline * 100 if baseline > 0 else 0.0


@dataclass
class ComparisonResult:
    baseline: str
    candidate: str
    delta: DeltaMetrics
    significance: SignificanceTest
    recommendation: Recommendation
    baseline_metrics: AggregateMetrics = field(default_factory=AggregateMetrics)
    candidate_metrics: AggregateMetrics = field(default_factory=AggregateMetrics)

    @classmethod
    def compare(cls, a: EvaluationResults, b: EvaluationResults) -> ComparisonResult:
        agg_a, agg_b = a.aggregate, b.aggregate
        delta = DeltaMetrics(
            accuracy=(agg_b.accuracy - agg_a.accuracy) * 100,
            cost_usd=agg_b.mean_cost_usd - agg_a.mean_cost_usd,
            cost_pct=_pct_change(agg_a.mean_cost_usd, agg_b.mean_cost_usd),
            duration_ms=agg_b.mean_duration_ms - agg_a.mean_duration_ms,
            duration_pct=_pct_change(agg_a.mean_duration_ms, agg_b.mean_duration_ms),
        )

        accuracy_test = welch_t_test(
            [1.0 if t.solved else 0.0 for t in a.tasks],
            [1.0 if t.solved else 0.0 for t in b.tasks],
        )
        cost_test = welch_t_test([t.cost_usd for t in a.tasks], [t.cost_usd for t in b.tasks])
        significance = SignificanceTest(
            accuracy_significant=accuracy_test.p_value < SIGNIFICANCE_LEVEL,
            accuracy_p_value=accuracy_test.p_value,
            accuracy_t_stat=accuracy_test.t_stat,
            cost_significant=cost_test.p_value < SIGNIFICANCE_LEVEL,
            cost_p_value=cost_test.p_value,
        )
        return cls(
            baseline=a.name,
            candidate=b.name,
            delta=delta,
            significance=significance,
            recommendation=make_recommendation(delta, significance),
            baseline_metrics=agg_a,
            candidate_metrics=agg_b,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["recommendation"] = self.recommendation.value
        return data

    def summary(self) -> str:
        d, s = self.delta, self.significance
        return "\n".join([
            f"Comparison: {self.baseline} -> {self.candidate}",
            f"  Accuracy: {d.accuracy:+.2f} pp (p={s.accuracy_p_value:.4f})",
            f"  Cost: {d.cost_usd:+.4f} USD ({d.cost_pct:+.1f}%, p={s.cost_p_value:.4f})",
            f"  Duration: {d.duration_ms:+.0f} ms ({d.duration_pct:+.1f}%)",
            f"  Accuracy significant: {s.accuracy_significant} (p < {SIGNIFICANCE_LEVEL})",
            f"  Recommendation: {self.recommendation.value}",
        ])


def make_recommendation(delta: DeltaMetrics, sig: SignificanceTest) -> Recommendation:
    """Ordered rules; the first that applies decides."""
    acc, cost, dur = delta.accuracy, delta.cost_pct, delta.duration_pct
    significant = sig.accuracy_significant

    if not significant and abs(acc) < 2.0:
        return Recommendation.NEED_MORE_DATA
    if acc >= 2.0 and cost < 20.0 and significant:
        return Recommendation.ADOPT
    if cost <= -20.0 and acc >= -0.5:
        return Recommendation.ADOPT
    if dur <= -30.0 and acc >= -0.5 and cost < 20.0:
        return Recommendation.ADOPT
    if acc < 1.0 and not significant:
        return Recommendation.REJECT
    if cost > 30.0 and acc < 2.0:
        return Recommendation.REJECT
    if acc < -1.0:
        return Recommendation.REJECT
    if 1.0 <= acc < 2.0:
        return Recommendation.INVESTIGATE
    return Recommendation.NEED_MORE_DATA


def required_sample_size(effect_size: float) -> int:
    """Rule-of-thumb minimum per-arm sample size for a t-test."""
    effect_size = abs(effect_size)
    if effect_size < 0.3:
        return 50
    if effect_size < 0.5:
        return 30
    return 20


def check_sample_size(n: int, effect_size: float) -> bool:
    return n >= required_sample_size(effect_size)


def cohens_d(sample_a: Sequence[float], sample_b: Sequence[float]) -> float:
    """Standardized mean difference (b - a) with pooled standard deviation."""
    n_a, n_b = len(sample_a), len(sample_b)
    if n_a < 2 or n_b < 2:
        return 0.0
    var_a = np.var(sample_a, ddof=1)
    var_b = np.var(sample_b, ddof=1)
    pooled_sd = math.sqrt(((n_a - 1) * var_a + (n_b - 1) * var_b) / (n_a + n_b - 2))
    if pooled_sd == 0:
        return 0.0
    return float((np.mean(sample_b) - np.mean(sample_a)) / pooled_sd)


def interpret_effect_size(d: float) -> str:
    d = abs(d)
    if d < 0.2:
        return "negligible"
    if d < 0.5:
        return "small"
    if d < 0.8:
        return "medium"
    if d < 1.2:
        return "large"
    return "very large"


def bootstrap_ci(
    sample: Sequence[float],
    statistic: Callable[[np.ndarray], float] = np.mean,
    confidence_level: float = 0.95,
    n_resamples: int = 10_000,
) -> tuple[float, float]:
    """Percentile bootstrap confidence interval for a statistic."""
    if len(sample) == 0:
        return (0.0, 0.0)
    if len(sample) == 1 or np.ptp(sample) == 0:
        value = float(statistic(np.asarray(sample)))
        return (value, value)
    result = stats.bootstrap(
        (np.asarray(sample, dtype=float),),
        statistic,
        confidence_level=confidence_level,
        n_resamples=n_resamples,
        method="percentile",
    )
    return (float(result.confidence_interval.low), float(result.confidence_interval.high))


def benjamini_hochberg(p_values: Sequence[float], fdr_level: float = 0.05) -> list[bool]:
    """Which hypotheses are rejected at the given false discovery rate."""
    m = len(p_values)
    if m == 0:
        return []
    order = sorted(range(m), key=lambda i: p_values[i])
    k_max = -1
    for rank, index in enumerate(order, 1):
        if p_values[index] <= rank / m * fdr_level:
            k_max = rank
    rejected = [False] * m
    for index in order[:max(k_max, 0)]:
        rejected[index] = True
    return rejected


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    if len(x) != len(y) or len(x) < 2 or np.ptp(x) == 0 or np.ptp(y) == 0:
        return 0.0
    return float(stats.pearsonr(x, y).statistic)


def spearman_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    if len(x) != len(y) or len(x) < 2 or np.ptp(x) == 0 or np.ptp(y) == 0:
        return 0.0
    return float(stats.spearmanr(x, y).statistic)
