"""
Firestore-backed remote document store.

Maps the four-call document interface onto Google Cloud Firestore.
Connection documents are watched with server-side ordering by date.
"""

import logging
from typing import Any, Dict, Optional

from google.cloud import firestore

from .remote import ChangeCallback, ErrorCallback, RemoteDocumentStore, Subscription

logger = logging.getLogger(__name__)


class FirestoreDocumentStore(RemoteDocumentStore):
    """Firestore client wrapper.

    Errors from the client library propagate unchanged; the sync
    coordinator decides how to recover.
    """

    def __init__(self, project: Optional[str] = None, client: Optional[Any] = None):
        """Initialize the Firestore store.

        Args:
            project: Google Cloud project id (ambient credentials when None)
            client: Pre-built firestore.Client, mainly for tests
        """
        self.project = project
        self.client = client or firestore.Client(project=project)

    def read_document(self, key: str) -> Optional[Dict[str, Any]]:
        snapshot = self.client.document(key).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    def write_document(self, key: str, value: Dict[str, Any]) -> None:
        self.client.document(key).set(value)

    def delete_document(self, key: str) -> None:
        self.client.document(key).delete()

    def subscribe(self, scope: str, on_change: ChangeCallback, on_error: ErrorCallback) -> Subscription:
        query = self.client.collection(scope).order_by(
            "date", direction=firestore.Query.DESCENDING
        )

        def _on_snapshot(documents, changes, read_time):
            try:
                on_change({doc.id: doc.to_dict() for doc in documents})
            except Exception as e:
                logger.warning("Firestore snapshot handler failed for %s: %s", scope, e)
                on_error(e)

        watch = query.on_snapshot(_on_snapshot)
        return Subscription(watch.unsubscribe)
