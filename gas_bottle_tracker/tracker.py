"""
Tracker service.

Explicit command handlers over the record store, local storage and sync
coordinator. Any front end calls these instead of touching the
components directly.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from gas_bottle_tracker.config.loader import TrackerConfig, default_config
from gas_bottle_tracker.core.report import PeriodReport, build_report_document, generate_report
from gas_bottle_tracker.core.stats import StatsResult, calculate_stats
from gas_bottle_tracker.core.transfer import build_export_document, parse_import
from gas_bottle_tracker.storage.local import LocalStorage
from gas_bottle_tracker.storage.models import Connection, Settings, Snapshot
from gas_bottle_tracker.storage.repository import RecordStore
from gas_bottle_tracker.sync.coordinator import SyncCoordinator, SyncStatus
from gas_bottle_tracker.sync.remote import RemoteDocumentStore, create_remote_store

logger = logging.getLogger(__name__)


class GasBottleTracker:
    """One tracker session for the local user.

    Use as a context manager so the remote subscription is torn down and
    queued pushes are drained when the session ends.
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        remote_factory: Optional[Callable[[], RemoteDocumentStore]] = None,
        now: Callable[[], datetime] = datetime.now
    ):
        """Load local state and connect the sync coordinator.

        Args:
            config: Tracker configuration (defaults when omitted)
            remote_factory: Overrides the remote store built from config
            now: Clock for ids, timestamps and export dates
        """
        self.config = config or default_config()
        self._now = now
        defaults = Settings(
            bottle_weight=self.config.defaults.bottle_weight,
            bottle_price=self.config.defaults.bottle_price
        )
        self.local_storage = LocalStorage(self.config.storage.path, default_settings=defaults)
        self.store = RecordStore(self.local_storage, settings=defaults, now=now)
        self.store.load()
        self.user_id = self.local_storage.get_or_create_user_id()

        if remote_factory is None and self.config.remote.enabled:
            remote = self.config.remote
            remote_factory = lambda: create_remote_store(remote.backend.value, remote.project)

        self.sync = SyncCoordinator(
            self.store,
            self.user_id,
            remote_factory=remote_factory,
            collection=self.config.remote.collection,
            now=now
        )
        self.sync.start()

    def __enter__(self) -> "GasBottleTracker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def sync_status(self) -> SyncStatus:
        return self.sync.status

    def snapshot(self) -> Snapshot:
        return self.store.snapshot()

    def add_connection(self, date: str, cost: Optional[float] = None) -> Connection:
        connection = self.store.add(date, cost)
        logger.info("Added connection %s on %s", connection.id, connection.date)
        return connection

    def delete_connection(self, connection_id: int) -> bool:
        return self.store.remove(connection_id)

    def clear_history(self) -> None:
        self.store.clear()

    def update_settings(self, bottle_weight: float, bottle_price: float) -> Settings:
        return self.store.update_settings(bottle_weight, bottle_price)

    def stats(self) -> StatsResult:
        snapshot = self.store.snapshot()
        return calculate_stats(snapshot.connections, snapshot.settings)

    def report(self, start_date: str, end_date: str) -> PeriodReport:
        return generate_report(self.store.snapshot().connections, start_date, end_date)

    def report_document(self, report: PeriodReport) -> Dict[str, Any]:
        return build_report_document(report, self.store.settings, self._now())

    def export_data(self) -> Dict[str, Any]:
        return build_export_document(self.store.snapshot(), self._now())

    def import_data(self, text: str) -> Snapshot:
        """Replace all data with an exported document.

        Raises:
            DataImportError: If the text is not JSON
            ValidationError: If required keys or values are invalid
        """
        connections, settings = parse_import(text)
        snapshot = self.store.replace(connections, settings)
        logger.info("Imported %d connections", len(snapshot.connections))
        return snapshot

    def close(self) -> None:
        self.sync.close()
