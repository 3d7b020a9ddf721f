"""
Data export and import.

Export is a one-way projection of the tracker state plus derived
statistics. Import reads back only the connections and settings and is
all-or-nothing: every record is validated before anything is replaced.
"""

import json
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Tuple

from gas_bottle_tracker.storage.models import Connection, Settings, Snapshot
from .errors import DataImportError, ValidationError
from .stats import calculate_stats


def build_export_document(snapshot: Snapshot, exported_at: datetime) -> Dict[str, Any]:
    """Assemble the export document for a snapshot.

    Args:
        snapshot: Current store contents
        exported_at: Generation timestamp

    Returns:
        Dictionary with connections, settings, stats and exportDate
    """
    stats = calculate_stats(snapshot.connections, snapshot.settings)
    return {
        "connections": [c.to_dict() for c in snapshot.connections],
        "settings": snapshot.settings.to_dict(),
        "stats": asdict(stats),
        "exportDate": exported_at.isoformat(),
    }


def export_json(snapshot: Snapshot, exported_at: datetime) -> str:
    return json.dumps(build_export_document(snapshot, exported_at), indent=2)


def parse_import(text: str) -> Tuple[List[Connection], Settings]:
    """Parse and validate an import document.

    Extra keys such as ``stats`` and ``exportDate`` are ignored.

    Args:
        text: Raw JSON text

    Returns:
        Tuple of (connections, settings)

    Raises:
        DataImportError: If the text is not parseable JSON
        ValidationError: If connections or settings are missing or invalid
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise DataImportError(f"not valid JSON: {e}")

    if not isinstance(data, dict):
        raise ValidationError("expected an object")
    if "connections" not in data or "settings" not in data:
        raise ValidationError("connections and settings are required")
    if not isinstance(data["connections"], list):
        raise ValidationError("connections must be a list")

    connections = [Connection.from_dict(item) for item in data["connections"]]
    settings = Settings.from_dict(data["settings"])
    return connections, settings
