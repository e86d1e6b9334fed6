"""
Weighted health score over recent sync results.

Four component scores in [0, 100], averaged with equal weight:

- reliability: share of syncs that succeeded
- performance: average duration against a 30 second baseline
- efficiency: retries per processed item
- stability: coefficient of variation of durations
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Sequence

from .interfaces import SyncResult
from .statistics import mean, population_std_dev, round_half_up

HEALTH_SCORE_WINDOW = 50
BASELINE_DURATION_MS = 30_000.0
NEUTRAL_SCORE = 50


@dataclass
class HealthFactor:
    """Something that pulls the health score up or down."""
    name: str
    impact: str
    weight: float
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'impact': self.impact,
            'weight': self.weight,
            'description': self.description
        }


@dataclass
class HealthScore:
    overall: int
    components: Dict[str, int]
    factors: List[HealthFactor] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overall': self.overall,
            'components': dict(self.components),
            'factors': [f.to_dict() for f in self.factors],
            'timestamp': self.timestamp.isoformat()
        }


def reliability_score(results: Sequence[SyncResult]) -> float:
    return sum(1 for r in results if r.success) / len(results) * 100


def performance_score(results: Sequence[SyncResult]) -> float:
    average = mean([r.duration_ms for r in results])
    return min(100.0, max(0.0, 100 - (average / BASELINE_DURATION_MS) * 50))


def efficiency_score(results: Sequence[SyncResult]) -> float:
    retry_rate = mean([r.retry_count / max(1, r.items_processed) for r in results])
    return max(0.0, 100 - retry_rate * 100)


def stability_score(results: Sequence[SyncResult]) -> float:
    if len(results) < 2:
        return 100.0

    durations = [r.duration_ms for r in results]
    average = mean(durations)
    variation = population_std_dev(durations) / average if average > 0 else 0.0
    return max(0.0, 100 - variation * 100)


def health_factors(components: Dict[str, float]) -> List[HealthFactor]:
    factors = []

    if components['reliability'] < 80:
        factors.append(HealthFactor(
            'Low Success Rate', 'negative', 0.8,
            f"Only {components['reliability']:.1f}% of syncs are successful"
        ))
    if components['performance'] < 70:
        factors.append(HealthFactor(
            'Slow Sync Performance', 'negative', 0.6,
            "Sync operations are taking longer than expected"
        ))
    if components['efficiency'] < 75:
        factors.append(HealthFactor(
            'High Retry Rate', 'negative', 0.5,
            "Many operations require retries, indicating efficiency issues"
        ))
    if components['reliability'] > 95:
        factors.append(HealthFactor(
            'Excellent Reliability', 'positive', 0.7,
            "Very high success rate for sync operations"
        ))

    return factors


def calculate_health_score(results: Sequence[SyncResult], now: datetime) -> HealthScore:
    """
    Score the most recent ``HEALTH_SCORE_WINDOW`` sync results.

    Args:
        results: Sync results, oldest first
        now: Timestamp for the score

    Returns:
        HealthScore with rounded components; every score is 50 without history
    """
    if not results:
        return HealthScore(
            overall=NEUTRAL_SCORE,
            components={name: NEUTRAL_SCORE for name in ('reliability', 'performance', 'efficiency', 'stability')},
            timestamp=now
        )

    recent = list(results)[-HEALTH_SCORE_WINDOW:]
    components = {
        'reliability': reliability_score(recent),
        'performance': performance_score(recent),
        'efficiency': efficiency_score(recent),
        'stability': stability_score(recent),
    }

    return HealthScore(
        overall=round_half_up(sum(components.values()) / len(components)),
        components={name: round_half_up(value) for name, value in components.items()},
        factors=health_factors(components),
        timestamp=now
    )
