"""
Repository pattern for tracker data.

Owns the authoritative list of refill records and the bottle settings.
Every successful mutation is written to local storage before control
returns, then handed to the attached sync coordinator for mirroring.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from gas_bottle_tracker.core.errors import ValidationError
from .local import LocalStorage
from .models import Connection, Settings, Snapshot

logger = logging.getLogger(__name__)


def sort_connections(connections: Iterable[Connection]) -> List[Connection]:
    """Sort newest first; records sharing a date keep their relative order."""
    return sorted(connections, key=lambda c: c.day, reverse=True)


class RecordStore:
    """In-memory record store with synchronous local persistence.

    The store knows nothing about the remote side beyond an optional
    observer attached by the sync coordinator. The observer is notified
    while the store lock is still held, so a remote merge that also takes
    ``lock`` never interleaves with a half-announced mutation. Remote
    merges go through ``apply_remote_*`` which persist locally but never
    notify the observer, so a merged change is not echoed back.
    """

    def __init__(
        self,
        local_storage: Optional[LocalStorage] = None,
        settings: Optional[Settings] = None,
        now: Callable[[], datetime] = datetime.now
    ):
        """Initialize an empty store.

        Args:
            local_storage: Durable storage written after every mutation
            settings: Initial settings (defaults when omitted)
            now: Clock used for ids and timestamps
        """
        self._local_storage = local_storage
        self._connections: List[Connection] = []
        self._settings = settings or Settings()
        self._now = now
        self._last_id = 0
        self._observer = None
        self._lock = threading.RLock()

    def load(self) -> Snapshot:
        """Replace in-memory state with what local storage holds."""
        if self._local_storage is None:
            return self.snapshot()
        connections, settings = self._local_storage.load_state()
        with self._lock:
            self._connections = sort_connections(connections)
            self._settings = settings
            self._last_id = max((c.id for c in self._connections), default=0)
            logger.info("Loaded %d connections from local storage", len(self._connections))
            return self.snapshot()

    def attach(self, observer) -> None:
        """Attach the object notified after each local mutation."""
        self._observer = observer

    def detach(self) -> None:
        self._observer = None

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def settings(self) -> Settings:
        return self._settings

    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(connections=tuple(self._connections), settings=self._settings)

    def get(self, connection_id: int) -> Optional[Connection]:
        with self._lock:
            for connection in self._connections:
                if connection.id == connection_id:
                    return connection
            return None

    def add(self, date: str, cost: Optional[float] = None) -> Connection:
        """Record a new refill.

        Args:
            date: ISO calendar date of the refill
            cost: Amount paid; defaults to the configured bottle price

        Returns:
            The stored connection

        Raises:
            ValidationError: If the date is missing/invalid or cost < 0
        """
        with self._lock:
            if cost is None:
                cost = self._settings.bottle_price
            now = self._now()
            connection = Connection(
                id=self._next_id(now),
                date=date.strip() if isinstance(date, str) else date,
                cost=cost,
                timestamp=now.isoformat()
            )
            self._connections.append(connection)
            self._connections = sort_connections(self._connections)
            self._last_id = connection.id
            self._persist()
            if self._observer is not None:
                self._observer.connection_added(connection)
        return connection

    def remove(self, connection_id: int) -> bool:
        """Remove a connection by id. Unknown ids are ignored.

        Returns:
            True if a record was removed
        """
        with self._lock:
            remaining = [c for c in self._connections if c.id != connection_id]
            if len(remaining) == len(self._connections):
                return False
            self._connections = remaining
            self._persist()
            if self._observer is not None:
                self._observer.connection_removed(connection_id)
        return True

    def clear(self) -> None:
        with self._lock:
            removed_ids = [c.id for c in self._connections]
            self._connections = []
            self._persist()
            if self._observer is not None:
                self._observer.connections_cleared(removed_ids)

    def update_settings(self, bottle_weight: float, bottle_price: float) -> Settings:
        """Replace both settings fields atomically.

        Raises:
            ValidationError: If bottle_weight <= 0 or bottle_price < 0
        """
        settings = Settings(bottle_weight=bottle_weight, bottle_price=bottle_price)
        with self._lock:
            self._settings = settings
            self._persist()
            if self._observer is not None:
                self._observer.settings_updated(settings)
        return settings

    def replace(self, connections: Iterable[Connection], settings: Settings) -> Snapshot:
        """Replace the whole store, as an import does.

        Raises:
            ValidationError: If connection ids are not unique
        """
        connections = list(connections)
        _check_unique_ids(connections)
        with self._lock:
            previous_ids = [c.id for c in self._connections]
            self._connections = sort_connections(connections)
            self._settings = settings
            self._last_id = max([self._last_id] + [c.id for c in connections])
            self._persist()
            snapshot = self.snapshot()
            if self._observer is not None:
                self._observer.store_replaced(snapshot, previous_ids)
        return snapshot

    def apply_remote_connections(self, connections: Iterable[Connection]) -> Snapshot:
        """Adopt a connection set received from the remote store."""
        connections = list(connections)
        _check_unique_ids(connections)
        with self._lock:
            self._connections = sort_connections(connections)
            self._last_id = max([self._last_id] + [c.id for c in connections])
            self._persist()
            return self.snapshot()

    def apply_remote_settings(self, settings: Settings) -> Snapshot:
        with self._lock:
            self._settings = settings
            self._persist()
            return self.snapshot()

    def _next_id(self, now: datetime) -> int:
        candidate = max(int(now.timestamp() * 1000), self._last_id + 1)
        existing = {c.id for c in self._connections}
        while candidate in existing:
            candidate += 1
        return candidate

    def _persist(self) -> None:
        if self._local_storage is not None:
            self._local_storage.save_state(self._connections, self._settings)


def _check_unique_ids(connections: List[Connection]) -> None:
    ids = [c.id for c in connections]
    if len(ids) != len(set(ids)):
        raise ValidationError("connection ids must be unique")
