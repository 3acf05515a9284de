"""
Performance metric data types.
"""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Recommendation(str, Enum):
    """Outcome of comparing the candidate variant against the baseline."""

    INSUFFICIENT_DATA = "insufficient_data"
    ADOPT = "adopt"
    INVESTIGATE = "investigate"
    NEUTRAL = "neutral"


class MetricUnit(str, Enum):
    MILLISECONDS = "Milliseconds"
    PERCENT = "Percent"
    COUNT = "Count"


@dataclass(frozen=True)
class PerformanceMetric:
    """One completed guarded operation. Immutable once recorded."""

    operation: str
    variant: str
    duration_ms: float
    success: bool
    timestamp: float = field(default_factory=time.time)
    correlation_id: Optional[str] = None
    error_kind: Optional[str] = None
    user_id: Optional[str] = None


@dataclass
class PerformanceStats:
    """Aggregates over a set of metrics. Durations in ms, error rate in percent."""

    operation: str
    variant: Optional[str] = None
    count: int = 0
    success_count: int = 0
    failure_count: int = 0
    mean_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    error_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VariantComparison:
    """Baseline (A) versus candidate (B) for one operation."""

    operation: str
    baseline: PerformanceStats
    candidate: PerformanceStats
    improvement_percent: float
    error_rate_delta: float
    recommendation: Recommendation
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "baseline": self.baseline.to_dict(),
            "candidate": self.candidate.to_dict(),
            "improvement_percent": self.improvement_percent,
            "error_rate_delta": self.error_rate_delta,
            "recommendation": self.recommendation.value,
            "message": self.message,
        }


@dataclass
class PerformanceReport:
    """Summary across every operation seen in the window."""

    window: float
    generated_at: float
    operations: Dict[str, PerformanceStats] = field(default_factory=dict)
    comparisons: Dict[str, VariantComparison] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window": self.window,
            "generated_at": self.generated_at,
            "operations": {k: v.to_dict() for k, v in self.operations.items()},
            "comparisons": {k: v.to_dict() for k, v in self.comparisons.items()},
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class MetricDatum:
    """One named measurement sent to a metrics sink."""

    name: str
    value: float
    unit: MetricUnit
    timestamp: float
    dimensions: Dict[str, str] = field(default_factory=dict)
