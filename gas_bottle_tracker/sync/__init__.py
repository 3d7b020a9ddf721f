"""
Remote synchronization for Gas Bottle Tracker.

Provides the remote document store interface and the coordinator that
mirrors local changes to it.
"""

from .coordinator import SyncCoordinator, SyncStatus
from .remote import MemoryDocumentStore, RemoteDocumentStore, Subscription, create_remote_store

__all__ = [
    "MemoryDocumentStore",
    "RemoteDocumentStore",
    "Subscription",
    "SyncCoordinator",
    "SyncStatus",
    "create_remote_store",
]
