"""
Remote document store interface.

The sync coordinator talks to the hosted database through four calls
only: read, write and delete a document by key, and subscribe to the
documents directly under a collection scope. Keys are slash-separated
paths such as ``users/<uid>/connections/<id>``.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from gas_bottle_tracker.core.errors import RemoteUnavailableError

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Dict[str, Dict[str, Any]]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    """Handle returned by ``subscribe``; unsubscribing twice is harmless."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._cancel()


class RemoteDocumentStore(ABC):
    """Minimal key/value document store consumed by the sync coordinator."""

    @abstractmethod
    def read_document(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the document stored at key, or None when absent."""

    @abstractmethod
    def write_document(self, key: str, value: Dict[str, Any]) -> None:
        """Create or overwrite the document at key."""

    @abstractmethod
    def delete_document(self, key: str) -> None:
        """Delete the document at key. Missing documents are ignored."""

    @abstractmethod
    def subscribe(self, scope: str, on_change: ChangeCallback, on_error: ErrorCallback) -> Subscription:
        """Watch the documents directly under a collection scope.

        Args:
            scope: Collection path, e.g. ``users/<uid>/connections``
            on_change: Called with a mapping of document id to data,
                once with the current contents and again after each change
            on_error: Called when the watch fails

        Returns:
            Subscription that stops further callbacks
        """


class MemoryDocumentStore(RemoteDocumentStore):
    """Process-local document store.

    Notifies subscribers synchronously from the thread performing the
    write. Used for offline runs and in tests.
    """

    def __init__(self):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._watchers: List[Tuple[str, ChangeCallback, ErrorCallback]] = []
        self._lock = threading.RLock()

    def read_document(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._documents.get(key)
            return copy.deepcopy(document) if document is not None else None

    def write_document(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._documents[key] = copy.deepcopy(value)
        self._notify(key)

    def delete_document(self, key: str) -> None:
        with self._lock:
            existed = self._documents.pop(key, None) is not None
        if existed:
            self._notify(key)

    def subscribe(self, scope: str, on_change: ChangeCallback, on_error: ErrorCallback) -> Subscription:
        watcher = (scope, on_change, on_error)
        with self._lock:
            self._watchers.append(watcher)

        def cancel() -> None:
            with self._lock:
                if watcher in self._watchers:
                    self._watchers.remove(watcher)

        self._deliver(watcher)
        return Subscription(cancel)

    def documents_under(self, scope: str) -> Dict[str, Dict[str, Any]]:
        """Copy of the documents directly under a collection scope."""
        prefix = scope.rstrip("/") + "/"
        with self._lock:
            return {
                key[len(prefix):]: copy.deepcopy(value)
                for key, value in self._documents.items()
                if key.startswith(prefix) and "/" not in key[len(prefix):]
            }

    def _notify(self, key: str) -> None:
        parent = key.rsplit("/", 1)[0] if "/" in key else ""
        with self._lock:
            watchers = [w for w in self._watchers if w[0].rstrip("/") == parent]
        for watcher in watchers:
            self._deliver(watcher)

    def _deliver(self, watcher: Tuple[str, ChangeCallback, ErrorCallback]) -> None:
        scope, on_change, on_error = watcher
        try:
            on_change(self.documents_under(scope))
        except Exception as e:
            on_error(e)


def create_remote_store(backend: str, project: Optional[str] = None) -> RemoteDocumentStore:
    """Build the configured remote store.

    Args:
        backend: "firestore" or "memory"
        project: Cloud project id for Firestore

    Returns:
        A ready RemoteDocumentStore

    Raises:
        RemoteUnavailableError: If the backend is unknown or its client
            library cannot be loaded or initialized
    """
    if backend == "memory":
        return MemoryDocumentStore()
    if backend != "firestore":
        raise RemoteUnavailableError(f"Unknown remote backend: {backend}")

    try:
        from .firestore_client import FirestoreDocumentStore
    except ImportError as e:
        raise RemoteUnavailableError(f"Firestore client library not available: {e}")

    try:
        return FirestoreDocumentStore(project=project)
    except Exception as e:
        raise RemoteUnavailableError(f"Firestore client failed to initialize: {e}")
