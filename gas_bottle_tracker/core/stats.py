"""
Usage and cost statistics.

Pure derivations over a snapshot of refill records. Every "days between"
figure is the ceiling of the calendar difference in days, and every ratio
is guarded so an empty or degenerate history yields 0 rather than NaN.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Sequence

from gas_bottle_tracker.storage.models import Connection, Settings
from .efficiency import EfficiencyRating, rate_efficiency

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class CostPerDay:
    """Aggregate daily cost figures across the whole history."""
    daily_rate: float = 0.0
    days_between: float = 0.0  # Mean gap between consecutive refills
    total_days: int = 0
    average_daily_cost: float = 0.0


@dataclass(frozen=True)
class BottleComparison:
    """Most recent bottle interval compared with the one before it."""
    has_data: bool = False
    current_days: int = 0
    previous_days: int = 0
    current_cost_per_day: float = 0.0
    previous_cost_per_day: float = 0.0
    current_gas_per_day: float = 0.0
    previous_gas_per_day: float = 0.0
    days_difference: int = 0
    change_percent: float = 0.0
    trend: str = "stable"


@dataclass(frozen=True)
class GasUsageStats:
    """Gas consumption figures in kilograms."""
    total_gas_used: float = 0.0
    average_gas_per_day: float = 0.0
    usage_trend: float = 0.0  # % change of mean gap, recent half vs older half
    projected_yearly_gas: float = 0.0


@dataclass(frozen=True)
class BottleAverages:
    """Distribution of bottle lifespans in days."""
    average_days: float = 0.0
    median_days: float = 0.0
    longest_days: int = 0  # Most efficient bottle
    shortest_days: int = 0  # Least efficient bottle


@dataclass(frozen=True)
class ComprehensiveStats:
    """Long-range totals and spending projections."""
    total_days_tracked: int = 0
    average_lifespan: float = 0.0
    shortest_lifespan: int = 0
    longest_lifespan: int = 0
    daily_spend: float = 0.0
    monthly_projection: float = 0.0
    annual_projection: float = 0.0
    cost_per_kg: float = 0.0


@dataclass(frozen=True)
class StatsResult:
    """Every derived figure for one snapshot."""
    total_connections: int = 0
    total_spent: float = 0.0
    avg_cost: float = 0.0
    total_gas: float = 0.0
    cost_per_day: CostPerDay = field(default_factory=CostPerDay)
    recent_cost_per_day: float = 0.0
    overall_cost_per_day: float = 0.0
    recent_days_between: int = 0
    projected_monthly: float = 0.0
    current_vs_previous: BottleComparison = field(default_factory=BottleComparison)
    gas_usage: GasUsageStats = field(default_factory=GasUsageStats)
    bottle_averages: BottleAverages = field(default_factory=BottleAverages)
    comprehensive: ComprehensiveStats = field(default_factory=ComprehensiveStats)
    efficiency: EfficiencyRating = field(default_factory=EfficiencyRating)


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days from earlier to later, rounded up."""
    return math.ceil((later - earlier).total_seconds() / SECONDS_PER_DAY)


def _ratio(numerator: float, denominator: float) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def _compute_exact_percentile(values: List[float], percentile: int) -> float:
    """Compute exact percentile using linear interpolation.

    Uses the same method as numpy.percentile with interpolation='linear'.

    Args:
        values: List of numeric values
        percentile: Percentile to compute (0-100)

    Returns:
        Exact percentile value
    """
    if not values:
        raise ValueError("Values list cannot be empty")

    if percentile < 0 or percentile > 100:
        raise ValueError("Percentile must be between 0 and 100")

    sorted_values = sorted(values)
    n = len(sorted_values)
    position = (percentile / 100.0) * (n - 1)

    lower_index = int(position)
    upper_index = min(lower_index + 1, n - 1)
    fraction = position - lower_index

    lower_value = sorted_values[lower_index]
    upper_value = sorted_values[upper_index]

    return lower_value + fraction * (upper_value - lower_value)


def sort_ascending(connections: Sequence[Connection]) -> List[Connection]:
    """Oldest first. Ties keep their incoming order."""
    return sorted(connections, key=lambda c: c.day)


def consecutive_gaps(connections: Sequence[Connection]) -> List[int]:
    """Ceil day gaps between each consecutive pair, oldest first."""
    ordered = sort_ascending(connections)
    return [
        days_between(ordered[i - 1].day, ordered[i].day)
        for i in range(1, len(ordered))
    ]


def total_span_days(connections: Sequence[Connection]) -> int:
    """Days from the earliest to the latest record; 0 for fewer than 2."""
    if len(connections) < 2:
        return 0
    ordered = sort_ascending(connections)
    return days_between(ordered[0].day, ordered[-1].day)


def calculate_cost_per_day(connections: Sequence[Connection], settings: Settings) -> CostPerDay:
    """Aggregate cost per day over the full history.

    ``daily_rate`` deliberately prices the average gap at today's bottle
    price rather than the historical costs.
    """
    if len(connections) < 2:
        return CostPerDay()

    total_days = total_span_days(connections)
    total_cost = sum(c.cost for c in connections)
    avg_days_between = _mean(consecutive_gaps(connections))

    return CostPerDay(
        daily_rate=_ratio(settings.bottle_price, avg_days_between),
        days_between=avg_days_between,
        total_days=total_days,
        average_daily_cost=_ratio(total_cost, total_days)
    )


def calculate_recent_days_between(connections: Sequence[Connection]) -> int:
    """Gap between the two most recent refills."""
    if len(connections) < 2:
        return 0
    newest_first = sorted(connections, key=lambda c: c.day, reverse=True)
    return days_between(newest_first[1].day, newest_first[0].day)


def calculate_recent_cost_per_day(connections: Sequence[Connection], settings: Settings) -> float:
    if len(connections) < 2:
        return 0.0
    gap = calculate_recent_days_between(connections)
    if gap <= 0:
        return 0.0
    return settings.bottle_price / gap


def calculate_overall_cost_per_day(connections: Sequence[Connection]) -> float:
    """Total spend divided by the tracked span.

    Same value as ``CostPerDay.average_daily_cost``; both are kept so
    existing consumers of either field keep working.
    """
    if len(connections) < 2:
        return 0.0
    total_days = total_span_days(connections)
    if total_days <= 0:
        return 0.0
    return sum(c.cost for c in connections) / total_days


def compare_current_to_previous(connections: Sequence[Connection], settings: Settings) -> BottleComparison:
    """Compare the latest bottle interval with the one before it.

    Needs two records for the current interval and three for the
    previous one; fewer than two records reports no data.
    """
    if len(connections) < 2:
        return BottleComparison()

    gaps = consecutive_gaps(connections)
    current_days = gaps[-1]
    previous_days = gaps[-2] if len(gaps) >= 2 else 0

    if previous_days <= 0:
        days_difference = 0
        change_percent = 0.0
        trend = "stable"
    else:
        days_difference = current_days - previous_days
        change_percent = days_difference / previous_days * 100
        if days_difference > 0:
            trend = "improving"
        elif days_difference < 0:
            trend = "declining"
        else:
            trend = "stable"

    return BottleComparison(
        has_data=True,
        current_days=current_days,
        previous_days=previous_days,
        current_cost_per_day=_ratio(settings.bottle_price, current_days),
        previous_cost_per_day=_ratio(settings.bottle_price, previous_days),
        current_gas_per_day=_ratio(settings.bottle_weight, current_days),
        previous_gas_per_day=_ratio(settings.bottle_weight, previous_days),
        days_difference=days_difference,
        change_percent=change_percent,
        trend=trend
    )


def calculate_gas_usage(connections: Sequence[Connection], settings: Settings) -> GasUsageStats:
    """Gas consumed, daily usage, trend and a one-year projection."""
    total_gas_used = len(connections) * settings.bottle_weight
    average_gas_per_day = _ratio(total_gas_used, total_span_days(connections))

    usage_trend = 0.0
    if len(connections) >= 4:
        ordered = sort_ascending(connections)
        half = len(ordered) // 2
        older_avg = _mean(consecutive_gaps(ordered[:half]))
        recent_avg = _mean(consecutive_gaps(ordered[half:]))
        usage_trend = _ratio(recent_avg - older_avg, older_avg) * 100

    return GasUsageStats(
        total_gas_used=total_gas_used,
        average_gas_per_day=average_gas_per_day,
        usage_trend=usage_trend,
        projected_yearly_gas=average_gas_per_day * 365
    )


def calculate_bottle_averages(connections: Sequence[Connection]) -> BottleAverages:
    gaps = consecutive_gaps(connections)
    if not gaps:
        return BottleAverages()
    return BottleAverages(
        average_days=_mean(gaps),
        median_days=_compute_exact_percentile(gaps, 50),
        longest_days=max(gaps),
        shortest_days=min(gaps)
    )


def calculate_comprehensive(connections: Sequence[Connection], settings: Settings) -> ComprehensiveStats:
    total_spent = sum(c.cost for c in connections)
    total_days = total_span_days(connections)
    gaps = consecutive_gaps(connections)
    daily_spend = _ratio(total_spent, total_days)

    return ComprehensiveStats(
        total_days_tracked=total_days,
        average_lifespan=_mean(gaps),
        shortest_lifespan=min(gaps) if gaps else 0,
        longest_lifespan=max(gaps) if gaps else 0,
        daily_spend=daily_spend,
        monthly_projection=daily_spend * 30,
        annual_projection=daily_spend * 365,
        cost_per_kg=_ratio(total_spent, len(connections) * settings.bottle_weight)
    )


def calculate_stats(connections: Sequence[Connection], settings: Settings) -> StatsResult:
    """Compute every statistic for a snapshot.

    The input is never mutated and no state is kept between calls, so
    the same snapshot always yields an equal result.

    Args:
        connections: Refill records in any order
        settings: Current bottle settings

    Returns:
        StatsResult aggregating all derived figures
    """
    connections = list(connections)
    total_connections = len(connections)
    total_spent = sum(c.cost for c in connections)
    recent_cost_per_day = calculate_recent_cost_per_day(connections, settings)

    return StatsResult(
        total_connections=total_connections,
        total_spent=total_spent,
        avg_cost=_ratio(total_spent, total_connections),
        total_gas=total_connections * settings.bottle_weight,
        cost_per_day=calculate_cost_per_day(connections, settings),
        recent_cost_per_day=recent_cost_per_day,
        overall_cost_per_day=calculate_overall_cost_per_day(connections),
        recent_days_between=calculate_recent_days_between(connections),
        projected_monthly=recent_cost_per_day * 30 if recent_cost_per_day > 0 else 0.0,
        current_vs_previous=compare_current_to_previous(connections, settings),
        gas_usage=calculate_gas_usage(connections, settings),
        bottle_averages=calculate_bottle_averages(connections),
        comprehensive=calculate_comprehensive(connections, settings),
        efficiency=rate_efficiency(consecutive_gaps(connections))
    )
