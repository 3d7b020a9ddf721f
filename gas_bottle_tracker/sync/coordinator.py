"""
Local-first synchronization with the remote document store.

The coordinator owns remote connectivity state. Local mutations are
always persisted by the record store first; the coordinator then mirrors
them on a single worker thread, so remote failures can only ever change
the observable sync status.

Status transitions:
- connecting -> connected: initial read/write round-trip succeeded
- connecting -> error: remote reachable but failing, or malformed data
- connecting -> local: remote client could not be created at all
- any -> connected/error: re-evaluated after every mirrored mutation;
  stays error while remote changes are not being watched
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from gas_bottle_tracker.core.errors import RemoteUnavailableError, ValidationError
from gas_bottle_tracker.storage.models import Connection, Settings, Snapshot
from gas_bottle_tracker.storage.repository import RecordStore
from .remote import RemoteDocumentStore, Subscription

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Observable remote connectivity."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    LOCAL = "local"


def content_key(connections: Iterable[Connection]) -> Tuple[Tuple[int, str, float], ...]:
    """Order-independent identity of a connection set."""
    return tuple(sorted((c.id, c.date, float(c.cost)) for c in connections))


def connection_document(connection: Connection, settings: Settings) -> Dict[str, Any]:
    return {
        "date": connection.date,
        "cost": connection.cost,
        "timestamp": connection.timestamp,
        "bottleWeight": settings.bottle_weight,
    }


def connection_from_document(document_id: str, data: Dict[str, Any]) -> Connection:
    """Rebuild a connection from a remote sub-document.

    Raises:
        ValidationError: If the id or any field is invalid
    """
    try:
        connection_id = int(document_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid connection id: {document_id!r}")
    if not isinstance(data, dict):
        raise ValidationError(f"Connection {document_id} is not an object")
    return Connection.from_dict({**data, "id": connection_id})


class SyncCoordinator:
    """Mirror a record store to one user's remote documents.

    Remote notifications are merged only when their content differs from
    the in-memory set, and are ignored while local writes are still in
    flight so a stale echo cannot overwrite a newer local mutation.

    Local changes stay recorded until a push succeeds. Every push sends
    all of them, and every merge lays them over the remote set, so a
    failed mirror never costs a local record.
    """

    def __init__(
        self,
        store: RecordStore,
        user_id: str,
        remote_factory: Optional[Callable[[], RemoteDocumentStore]] = None,
        collection: str = "users",
        executor: Optional[ThreadPoolExecutor] = None,
        now: Callable[[], datetime] = datetime.now
    ):
        """Initialize the coordinator and attach it to the store.

        Args:
            store: Record store to mirror
            user_id: Remote partition key
            remote_factory: Builds the remote client; None runs locally
            collection: Top-level collection holding user documents
            executor: Worker for remote pushes (single thread by default)
            now: Clock for the lastUpdated field
        """
        self.store = store
        self.user_id = user_id
        self.collection = collection
        self._remote_factory = remote_factory
        self._remote: Optional[RemoteDocumentStore] = None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="gas-sync")
        self._now = now
        self._status = SyncStatus.CONNECTING
        self._status_listeners: List[Callable[[SyncStatus], None]] = []
        self._merge_listeners: List[Callable[[Snapshot], None]] = []
        self._subscription: Optional[Subscription] = None
        self._futures: List[Future] = []
        self._pending = 0
        # Local changes not yet acknowledged by a successful push
        self._unsynced: Dict[int, Connection] = {}
        self._unsynced_deletes: Set[int] = set()
        self._lock = threading.Lock()
        self._closed = False
        store.attach(self)

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def user_key(self) -> str:
        return f"{self.collection}/{self.user_id}"

    @property
    def connections_scope(self) -> str:
        return f"{self.user_key}/connections"

    def connection_key(self, connection_id: int) -> str:
        return f"{self.connections_scope}/{connection_id}"

    def add_status_listener(self, callback: Callable[[SyncStatus], None]) -> None:
        self._status_listeners.append(callback)

    def add_merge_listener(self, callback: Callable[[Snapshot], None]) -> None:
        """Register a callback run after a remote change is merged locally."""
        self._merge_listeners.append(callback)

    def start(self) -> SyncStatus:
        """Connect to the remote store and reconcile with local state.

        Never raises; failures leave the locally loaded data active and
        are reported through the status.

        Returns:
            Status after the initial round-trip
        """
        self._set_status(SyncStatus.CONNECTING)

        if self._remote_factory is None:
            logger.info("Remote sync disabled, running on local storage")
            self._set_status(SyncStatus.LOCAL)
            return self._status

        try:
            self._remote = self._remote_factory()
        except Exception as e:
            logger.warning("Remote store could not be initialized, running locally: %s", e)
            self._remote = None
            self._set_status(SyncStatus.LOCAL)
            return self._status

        try:
            self._initial_round_trip()
        except Exception as e:
            logger.warning("Remote sync failed, continuing with local data: %s", e)
            self._set_status(SyncStatus.ERROR)
            return self._status

        self._set_status(SyncStatus.CONNECTED)

        try:
            self._subscription = self._remote.subscribe(
                self.connections_scope, self._on_remote_change, self._on_remote_error
            )
        except Exception as e:
            logger.warning("Could not subscribe to remote changes: %s", e)
            self._set_status(SyncStatus.ERROR)

        return self._status

    def _initial_round_trip(self) -> None:
        document = self._remote.read_document(self.user_key)

        if document is None:
            snapshot = self.store.snapshot()
            for connection in snapshot.connections:
                self._remote.write_document(
                    self.connection_key(connection.id),
                    connection_document(connection, snapshot.settings)
                )
            self._remote.write_document(self.user_key, self._user_document(snapshot))
            logger.info("Initialized remote data with %d local connections", len(snapshot.connections))
            return

        if not isinstance(document, dict):
            raise RemoteUnavailableError("Malformed user document")
        remote_settings = document.get("settings") or {}
        if not isinstance(remote_settings, dict):
            raise RemoteUnavailableError("Malformed settings in user document")

        # Connections follow through the subscription's first notification
        self.store.apply_remote_settings(self.store.settings.merged_with(remote_settings))
        logger.info("Loaded remote settings for %s", self.user_id)

    def _user_document(self, snapshot: Snapshot) -> Dict[str, Any]:
        return {
            "settings": snapshot.settings.to_dict(),
            "lastUpdated": self._now().isoformat(),
            "totalConnections": len(snapshot.connections),
        }

    # Store observer hooks, called with the store lock held after the
    # local write has completed

    def connection_added(self, connection: Connection) -> None:
        self._record_unsynced(written=[connection])
        self._push("add connection")

    def connection_removed(self, connection_id: int) -> None:
        self._record_unsynced(deleted=[connection_id])
        self._push("delete connection")

    def connections_cleared(self, connection_ids: List[int]) -> None:
        self._record_unsynced(deleted=connection_ids)
        self._push("clear history")

    def settings_updated(self, settings: Settings) -> None:
        self._push("update settings")

    def store_replaced(self, snapshot: Snapshot, previous_ids: List[int]) -> None:
        current_ids = {c.id for c in snapshot.connections}
        self._record_unsynced(
            written=snapshot.connections,
            deleted=[i for i in previous_ids if i not in current_ids]
        )
        self._push("replace data")

    def _record_unsynced(self, written: Iterable[Connection] = (), deleted: Iterable[int] = ()) -> None:
        """Remember local changes until a push acknowledges them."""
        if self._remote is None or self._closed:
            return
        with self._lock:
            for connection_id in deleted:
                self._unsynced.pop(connection_id, None)
                self._unsynced_deletes.add(connection_id)
            for connection in written:
                self._unsynced[connection.id] = connection
                self._unsynced_deletes.discard(connection.id)

    def _push(self, description: str) -> Optional[Future]:
        if self._remote is None or self._closed:
            return None
        with self._lock:
            self._pending += 1
            self._futures = [f for f in self._futures if not f.done()]
        future = self._executor.submit(self._run_push, description)
        with self._lock:
            self._futures.append(future)
        return future

    def _run_push(self, description: str) -> None:
        """Flush every unacknowledged change, then the user summary.

        A failed push leaves its changes recorded, so the next push
        carries them again.
        """
        with self._lock:
            written = dict(self._unsynced)
            deleted = set(self._unsynced_deletes)
        try:
            snapshot = self.store.snapshot()
            for connection_id in deleted:
                self._remote.delete_document(self.connection_key(connection_id))
            for connection_id, connection in written.items():
                self._remote.write_document(
                    self.connection_key(connection_id),
                    connection_document(connection, snapshot.settings)
                )
            self._remote.write_document(self.user_key, self._user_document(snapshot))
        except Exception as e:
            logger.warning("Remote %s failed, local data kept: %s", description, e)
            self._set_status(SyncStatus.ERROR)
        else:
            with self._lock:
                for connection_id, connection in written.items():
                    if self._unsynced.get(connection_id) is connection:
                        del self._unsynced[connection_id]
                self._unsynced_deletes -= deleted
            if self._subscription is None:
                # Writes land but remote changes are not being watched
                self._set_status(SyncStatus.ERROR)
            else:
                self._set_status(SyncStatus.CONNECTED)
        finally:
            with self._lock:
                self._pending -= 1

    def _on_remote_change(self, documents: Dict[str, Dict[str, Any]]) -> None:
        if self._closed:
            return
        try:
            incoming = [connection_from_document(doc_id, data) for doc_id, data in documents.items()]
        except ValidationError as e:
            logger.warning("Ignoring malformed remote update: %s", e)
            self._set_status(SyncStatus.ERROR)
            return

        # Same lock order as a local mutation: store first, then ours
        with self.store.lock, self._lock:
            if self._pending:
                logger.debug("Ignoring remote update while %d local writes are in flight", self._pending)
                return
            merged = {c.id: c for c in incoming if c.id not in self._unsynced_deletes}
            merged.update(self._unsynced)
            retry = bool(self._unsynced or self._unsynced_deletes)

            if content_key(merged.values()) == content_key(self.store.snapshot().connections):
                logger.debug("Remote update matches local state")
                snapshot = None
            else:
                snapshot = self.store.apply_remote_connections(merged.values())
                logger.info("Merged %d connections from remote store", len(snapshot.connections))

        if snapshot is not None:
            for callback in list(self._merge_listeners):
                callback(snapshot)
        if retry:
            self._push("retry unsynced changes")

    def _on_remote_error(self, error: Exception) -> None:
        logger.warning("Remote subscription error: %s", error)
        self._set_status(SyncStatus.ERROR)

    def _set_status(self, status: SyncStatus) -> None:
        previous = self._status
        self._status = status
        if status != previous:
            logger.info("Sync status %s -> %s", previous.value, status.value)
        for callback in list(self._status_listeners):
            callback(status)

    def wait_for_pending(self, timeout: Optional[float] = None) -> bool:
        """Block until queued remote pushes finish.

        Returns:
            True if nothing is left in flight
        """
        with self._lock:
            futures = list(self._futures)
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    def close(self) -> None:
        """Stop listening for remote changes and drain pending pushes."""
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            try:
                self._subscription.unsubscribe()
            except Exception as e:
                logger.warning("Failed to unsubscribe from remote changes: %s", e)
            self._subscription = None
        self._executor.shutdown(wait=True)
        self.store.detach()
