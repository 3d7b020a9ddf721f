"""
Bottle efficiency rating.

Scores recent bottle lifespans against the history with a handful of
weighted signals, then maps the score onto five bands.

Signals:
- Current gap vs historical mean: +25 above, +10 within 80%, -25 below
- Consistency (longest minus shortest gap): +25 within 7 days,
  +15 within 14 days, +5 otherwise
- Trend vs the previous bottle: +20 longer, -10 shorter
- Mean gap length: +30 at 21+ days, +20 at 14+, +10 at 7+, -10 below
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple


class EfficiencyBand(Enum):
    """Rating bands from best to worst."""
    EXCELLENT = "Excellent"
    GOOD = "Good"
    AVERAGE = "Average"
    BELOW_AVERAGE = "Below Average"
    POOR = "Poor"
    NOT_AVAILABLE = "N/A"


# Minimum score for each band, checked in order
BAND_THRESHOLDS = (
    (80, EfficiencyBand.EXCELLENT),
    (60, EfficiencyBand.GOOD),
    (40, EfficiencyBand.AVERAGE),
    (20, EfficiencyBand.BELOW_AVERAGE),
)


@dataclass(frozen=True)
class EfficiencyRating:
    """Heuristic efficiency score with the factors that produced it."""
    score: int = 0
    rating: str = EfficiencyBand.NOT_AVAILABLE.value
    factors: Tuple[str, ...] = ()


def band_for_score(score: int) -> EfficiencyBand:
    for threshold, band in BAND_THRESHOLDS:
        if score >= threshold:
            return band
    return EfficiencyBand.POOR


def rate_efficiency(gaps: Sequence[int]) -> EfficiencyRating:
    """Rate bottle efficiency from consecutive gaps.

    Args:
        gaps: Day gaps between consecutive refills, oldest first

    Returns:
        EfficiencyRating; "N/A" with score 0 when fewer than two gaps
        (three records) are available
    """
    if len(gaps) < 2:
        return EfficiencyRating()

    average = sum(gaps) / len(gaps)
    current = gaps[-1]
    previous = gaps[-2]
    spread = max(gaps) - min(gaps)

    score = 0
    factors: List[str] = []

    if current > average:
        score += 25
        factors.append(f"Current bottle ({current} days) outlasting the average ({average:.1f} days)")
    elif current >= average * 0.8:
        score += 10
        factors.append(f"Current bottle ({current} days) close to the average ({average:.1f} days)")
    else:
        score -= 25
        factors.append(f"Current bottle ({current} days) well below the average ({average:.1f} days)")

    if spread <= 7:
        score += 25
        factors.append(f"Very consistent usage ({spread} day spread)")
    elif spread <= 14:
        score += 15
        factors.append(f"Fairly consistent usage ({spread} day spread)")
    else:
        score += 5
        factors.append(f"Inconsistent usage ({spread} day spread)")

    if current > previous:
        score += 20
        factors.append(f"Improving: {current} days vs {previous} days last bottle")
    elif current < previous:
        score -= 10
        factors.append(f"Declining: {current} days vs {previous} days last bottle")

    if average >= 21:
        score += 30
        factors.append("Bottles last three weeks or more")
    elif average >= 14:
        score += 20
        factors.append("Bottles last two weeks or more")
    elif average >= 7:
        score += 10
        factors.append("Bottles last a week or more")
    else:
        score -= 10
        factors.append("Bottles last less than a week")

    return EfficiencyRating(
        score=score,
        rating=band_for_score(score).value,
        factors=tuple(factors)
    )
