"""
Period reports.

Summarizes the refills falling inside a date range and projects the
period's spending rate over a year.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Sequence, Tuple

from gas_bottle_tracker.storage.models import Connection, Settings, parse_date
from .errors import ValidationError
from .stats import days_between


@dataclass(frozen=True)
class PeriodReport:
    """Statistics for one inclusive date range."""
    start_date: str
    end_date: str
    connections: Tuple[Connection, ...]
    total_connections: int
    total_spent: float
    avg_cost: float
    cost_per_day: float
    period_days: int
    projected_annual: float

    def statistics(self) -> Dict[str, Any]:
        return {
            "totalConnections": self.total_connections,
            "totalSpent": self.total_spent,
            "avgCost": self.avg_cost,
            "costPerDay": self.cost_per_day,
            "periodDays": self.period_days,
            "projectedAnnual": self.projected_annual,
        }


def filter_by_period(
    connections: Sequence[Connection],
    start: datetime,
    end: datetime
) -> List[Connection]:
    """Connections dated within [start, end], newest first."""
    selected = [c for c in connections if start <= c.day <= end]
    return sorted(selected, key=lambda c: c.day, reverse=True)


def generate_report(
    connections: Sequence[Connection],
    start_date: str,
    end_date: str
) -> PeriodReport:
    """Build a report for an inclusive date range.

    Args:
        connections: All refill records
        start_date: First day of the period (ISO date)
        end_date: Last day of the period (ISO date)

    Returns:
        PeriodReport for the range

    Raises:
        ValidationError: If a date is missing or invalid, the start is
            after the end, or no connections fall in the range
    """
    if not start_date or not end_date:
        raise ValidationError("Please select both start and end dates")

    start = parse_date(start_date)
    end = parse_date(end_date)
    if start > end:
        raise ValidationError("Start date must be before end date")

    selected = filter_by_period(connections, start, end)
    if not selected:
        raise ValidationError("No connections found in the selected date range")

    total_connections = len(selected)
    total_spent = sum(c.cost for c in selected)
    # Both the start and end dates count towards the period
    period_days = days_between(start, end) + 1
    cost_per_day = total_spent / period_days if period_days > 0 else 0.0

    return PeriodReport(
        start_date=start_date,
        end_date=end_date,
        connections=tuple(selected),
        total_connections=total_connections,
        total_spent=total_spent,
        avg_cost=total_spent / total_connections,
        cost_per_day=cost_per_day,
        period_days=period_days,
        projected_annual=cost_per_day * 365
    )


def build_report_document(report: PeriodReport, settings: Settings, generated_at: datetime) -> Dict[str, Any]:
    """JSON-ready export of a period report."""
    return {
        "reportPeriod": {
            "startDate": report.start_date,
            "endDate": report.end_date,
            "periodDays": report.period_days,
        },
        "statistics": report.statistics(),
        "connections": [c.to_dict() for c in report.connections],
        "settings": settings.to_dict(),
        "generatedAt": generated_at.isoformat(),
    }
