"""Statistical helpers for cross-scenario comparison.

Summaries carry a mean with a 95% confidence interval; group comparisons
(e.g. TDD vs non-TDD scenarios) report Cohen's d.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from typing import Any

# Cohen's conventional cut-offs, checked in order.
EFFECT_SIZE_LABELS = ((0.2, "negligible"), (0.5, "small"), (0.8, "medium"))


def _t_critical(n: int) -> float:
    # Small samples use a rounded t value; the normal 1.96 from 30 on.
    return 1.96 if n >= 30 else 2.0


@dataclass
class AggregatedMetrics:
    """One measurement (duration, score, lines added) summarized over scenarios."""

    count: int = 0
    mean: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    std_dev: float = 0.0
    ci_lower: float = 0.0
    ci_upper: float = 0.0

    @classmethod
    def from_values(cls, values: list[float]) -> AggregatedMetrics:
        if not values:
            return cls()
        mean = statistics.fmean(values)
        spread = statistics.stdev(values) if len(values) > 1 else 0.0
        margin = _t_critical(len(values)) * spread / math.sqrt(len(values))
        return cls(
            count=len(values),
            mean=mean,
            minimum=min(values),
            maximum=max(values),
            std_dev=spread,
            ci_lower=mean - margin,
            ci_upper=mean + margin,
        )

    def to_dict(self) -> dict[str, Any]:
        fields = {
            "mean": self.mean,
            "min": self.minimum,
            "max": self.maximum,
            "std_dev": self.std_dev,
            "ci_95_lower": self.ci_lower,
            "ci_95_upper": self.ci_upper,
        }
        return {"count": self.count, **{k: round(v, 4) for k, v in fields.items()}}


def compute_effect_size(group_a: list[float], group_b: list[float]) -> float:
    """Cohen's d of *group_a* over *group_b* using the pooled standard deviation.

    Groups with fewer than two values, or no spread at all, give 0.0.
    """
    if min(len(group_a), len(group_b)) < 2:
        return 0.0
    dof = len(group_a) + len(group_b) - 2
    pooled_variance = (
        (len(group_a) - 1) * statistics.variance(group_a)
        + (len(group_b) - 1) * statistics.variance(group_b)
    ) / dof
    if pooled_variance == 0:
        return 0.0
    return (statistics.fmean(group_a) - statistics.fmean(group_b)) / math.sqrt(pooled_variance)


def interpret_effect_size(d: float) -> str:
    for limit, label in EFFECT_SIZE_LABELS:
        if abs(d) < limit:
            return label
    return "large"
