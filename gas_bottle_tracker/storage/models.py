"""
Data models for storage layer.

Defines refill records, bottle settings and the read-only snapshot
handed to the statistics engine.
"""

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, Tuple

from gas_bottle_tracker.core.errors import ValidationError

DEFAULT_BOTTLE_WEIGHT = 47.0
DEFAULT_BOTTLE_PRICE = 83.50

CALENDAR_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


def parse_date(value: Any) -> datetime:
    """Parse an ISO calendar date string.

    Only the plain YYYY-MM-DD form is accepted. A time of day would
    shift the rounded-up day gaps.

    Args:
        value: Date string such as "2024-01-15"

    Returns:
        Naive datetime at midnight

    Raises:
        ValidationError: If the value is empty or not a valid calendar date
    """
    if not value or not isinstance(value, str):
        raise ValidationError("date is required")
    if not CALENDAR_DATE.fullmatch(value):
        raise ValidationError(f"Invalid date: {value!r}")
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")
    return datetime.combine(parsed, time())


def _validate_amount(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    amount = float(value)
    if math.isnan(amount) or math.isinf(amount):
        raise ValidationError(f"{name} must be a finite number")
    return amount


@dataclass(frozen=True)
class Connection:
    """One gas bottle refill event.

    The id doubles as the remote document key and the deletion key.
    The timestamp is informational only and never used in calculations.
    """
    id: int
    date: str
    cost: float
    timestamp: str

    def __post_init__(self):
        """Validate the record invariants."""
        if isinstance(self.id, bool) or not isinstance(self.id, int):
            raise ValidationError("id must be an integer")
        parse_date(self.date)
        if _validate_amount(self.cost, "cost") < 0:
            raise ValidationError("cost cannot be negative")

    @property
    def day(self) -> datetime:
        return parse_date(self.date)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "cost": self.cost,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Connection":
        """Build a connection from its JSON form.

        Raises:
            ValidationError: If a field is missing or invalid
        """
        if not isinstance(data, dict):
            raise ValidationError("connection must be an object")
        missing = {"id", "date", "cost"} - set(data.keys())
        if missing:
            raise ValidationError(f"connection missing fields: {sorted(missing)}")
        return cls(
            id=data["id"],
            date=data["date"],
            cost=_validate_amount(data["cost"], "cost"),
            timestamp=str(data.get("timestamp") or ""),
        )


@dataclass(frozen=True)
class Settings:
    """Bottle configuration shared by every calculation."""
    bottle_weight: float = DEFAULT_BOTTLE_WEIGHT
    bottle_price: float = DEFAULT_BOTTLE_PRICE

    def __post_init__(self):
        """Validate weight is positive and price is not negative."""
        if _validate_amount(self.bottle_weight, "bottle_weight") <= 0:
            raise ValidationError("bottle_weight must be > 0")
        if _validate_amount(self.bottle_price, "bottle_price") < 0:
            raise ValidationError("bottle_price cannot be negative")

    def to_dict(self) -> Dict[str, float]:
        return {"bottleWeight": self.bottle_weight, "bottlePrice": self.bottle_price}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        if not isinstance(data, dict):
            raise ValidationError("settings must be an object")
        if "bottleWeight" not in data or "bottlePrice" not in data:
            raise ValidationError("settings require bottleWeight and bottlePrice")
        return cls(
            bottle_weight=_validate_amount(data["bottleWeight"], "bottleWeight"),
            bottle_price=_validate_amount(data["bottlePrice"], "bottlePrice"),
        )

    def merged_with(self, data: Dict[str, Any]) -> "Settings":
        """Overlay present fields from a remote settings payload."""
        return Settings(
            bottle_weight=_validate_amount(data.get("bottleWeight", self.bottle_weight), "bottleWeight"),
            bottle_price=_validate_amount(data.get("bottlePrice", self.bottle_price), "bottlePrice"),
        )


@dataclass(frozen=True)
class Snapshot:
    """Read-only view of the record store."""
    connections: Tuple[Connection, ...]
    settings: Settings
