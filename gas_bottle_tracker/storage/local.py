"""
Durable local storage.

A small key/value table in SQLite playing the role browser local storage
plays for the web client: one key holds the JSON state document, another
holds the generated user identity.
"""

import json
import logging
import sqlite3
import uuid
from typing import List, Optional, Tuple

from gas_bottle_tracker.core.errors import ValidationError
from .db import DEFAULT_DB_PATH, get_connection
from .models import Connection, Settings

logger = logging.getLogger(__name__)

STATE_KEY = "gasBottleTracker"
USER_ID_KEY = "gasBottleTrackerUserId"


class LocalStorage:
    """Synchronous key/value persistence for tracker state.

    Load failures never propagate: a corrupt or unreadable state document
    is treated as an empty tracker with default settings.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, default_settings: Optional[Settings] = None):
        """Initialize local storage.

        Args:
            db_path: Path to SQLite database file
            default_settings: Settings used when nothing is stored yet
        """
        self.db_path = db_path
        self.default_settings = default_settings or Settings()

    def initialize_schema(self) -> None:
        """Create the key/value table if it doesn't exist."""
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS local_storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def get_item(self, key: str) -> Optional[str]:
        self.initialize_schema()
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT value FROM local_storage WHERE key = ?", (key,)
            ).fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def set_item(self, key: str, value: str) -> None:
        self.initialize_schema()
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT OR REPLACE INTO local_storage (key, value) VALUES (?, ?)",
                (key, value)
            )
            conn.commit()
        finally:
            conn.close()

    def remove_item(self, key: str) -> None:
        self.initialize_schema()
        conn = get_connection(self.db_path)
        try:
            conn.execute("DELETE FROM local_storage WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()

    def load_state(self) -> Tuple[List[Connection], Settings]:
        """Load connections and settings saved by a previous session.

        Returns:
            Tuple of (connections, settings); defaults when nothing is stored
            or the stored document cannot be read
        """
        try:
            raw = self.get_item(STATE_KEY)
        except sqlite3.Error as e:
            logger.warning("Local storage unreadable, starting empty: %s", e)
            return [], self.default_settings

        if raw is None:
            return [], self.default_settings

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValidationError("state document must be an object")
            connections = [Connection.from_dict(item) for item in data.get("connections") or []]
            settings_data = data.get("settings")
            settings = (
                self.default_settings.merged_with(settings_data)
                if isinstance(settings_data, dict) else self.default_settings
            )
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("Error loading saved data, starting empty: %s", e)
            return [], self.default_settings

        return connections, settings

    def save_state(self, connections: List[Connection], settings: Settings) -> bool:
        """Write the full state document.

        Args:
            connections: Records to persist
            settings: Current settings

        Returns:
            True when the write succeeded
        """
        document = {
            "connections": [c.to_dict() for c in connections],
            "settings": settings.to_dict(),
        }
        try:
            self.set_item(STATE_KEY, json.dumps(document))
        except sqlite3.Error as e:
            logger.error("Failed to save local state: %s", e)
            return False
        return True

    def get_or_create_user_id(self) -> str:
        """Return the persisted user identity, generating it on first use.

        When storage is unusable the generated identity lives for this
        session only.
        """
        try:
            user_id = self.get_item(USER_ID_KEY)
        except sqlite3.Error as e:
            logger.warning("Local storage unreadable, using a session identity: %s", e)
            return f"user_{uuid.uuid4().hex}"
        if user_id:
            return user_id
        user_id = f"user_{uuid.uuid4().hex}"
        try:
            self.set_item(USER_ID_KEY, user_id)
        except sqlite3.Error as e:
            logger.warning("Could not persist user identity: %s", e)
        logger.info("Generated new user identity %s", user_id)
        return user_id
