"""
Database connection management.

Provides the SQLite connection backing durable local storage.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "gas_bottle_tracker.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection.
    
    Creates the parent directory when it does not exist yet.
    
    Args:
        db_path: Path to SQLite database file
        
    Returns:
        SQLite connection
    """
    path = Path(db_path)
    if str(path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path))
