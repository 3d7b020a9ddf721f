"""
Unit tests for the record store.

Tests ordering, id assignment, validation, persistence and observer hooks.
"""

import os
import tempfile
import threading
from datetime import datetime
from unittest.mock import Mock

import pytest

from gas_bottle_tracker.core.errors import ValidationError
from gas_bottle_tracker.storage.local import LocalStorage
from gas_bottle_tracker.storage.models import Connection, Settings
from gas_bottle_tracker.storage.repository import RecordStore, sort_connections


FIXED_NOW = datetime(2024, 3, 1, 12, 0, 0)


def fixed_clock() -> datetime:
    return FIXED_NOW


def make_store(**kwargs) -> RecordStore:
    """Create a store with a mocked local storage and fixed clock."""
    local_storage = kwargs.pop("local_storage", Mock(spec=LocalStorage))
    return RecordStore(local_storage=local_storage, now=fixed_clock, **kwargs)


class TestSortConnections:
    """Test newest-first ordering."""

    def test_ties_keep_insertion_order(self):
        """Test stable ordering for records sharing a date."""
        first = Connection(id=1, date="2024-01-15", cost=80.0, timestamp="")
        second = Connection(id=2, date="2024-01-15", cost=85.0, timestamp="")
        older = Connection(id=3, date="2024-01-01", cost=80.0, timestamp="")

        ordered = sort_connections([older, first, second])

        assert [c.id for c in ordered] == [1, 2, 3]


class TestAdd:
    """Test adding connections."""

    def test_add_sorts_newest_first(self):
        """Test ordering after adds out of date order."""
        store = make_store()
        store.add("2024-01-15", 85.0)
        store.add("2024-02-05", 82.0)
        store.add("2024-01-01", 80.0)

        dates = [c.date for c in store.snapshot().connections]
        assert dates == ["2024-02-05", "2024-01-15", "2024-01-01"]

    def test_ids_are_unique_and_increasing(self):
        """Test id assignment under a frozen clock."""
        store = make_store()
        ids = [store.add("2024-01-01", 80.0).id for _ in range(3)]

        expected = int(FIXED_NOW.timestamp() * 1000)
        assert ids == [expected, expected + 1, expected + 2]

    def test_cost_defaults_to_bottle_price(self):
        """Test omitted cost."""
        store = make_store(settings=Settings(bottle_weight=47, bottle_price=90))
        assert store.add("2024-01-01").cost == 90

    def test_timestamp_from_clock(self):
        """Test the informational timestamp."""
        store = make_store()
        assert store.add("2024-01-01", 80.0).timestamp == "2024-03-01T12:00:00"

    def test_add_persists(self):
        """Test that every add writes local storage."""
        local_storage = Mock(spec=LocalStorage)
        store = make_store(local_storage=local_storage)

        store.add("2024-01-01", 80.0)

        local_storage.save_state.assert_called_once()
        connections, settings = local_storage.save_state.call_args[0]
        assert len(connections) == 1
        assert settings == Settings()

    def test_negative_cost_rejected_without_side_effects(self):
        """Test that an invalid add leaves the store and storage untouched."""
        local_storage = Mock(spec=LocalStorage)
        store = make_store(local_storage=local_storage)
        observer = Mock()
        store.attach(observer)

        with pytest.raises(ValidationError, match="cost cannot be negative"):
            store.add("2024-01-01", -1)

        assert store.snapshot().connections == ()
        local_storage.save_state.assert_not_called()
        observer.connection_added.assert_not_called()

    def test_missing_date_rejected(self):
        """Test empty date."""
        store = make_store()
        with pytest.raises(ValidationError, match="date is required"):
            store.add("", 80.0)

    def test_invalid_date_rejected(self):
        """Test malformed date."""
        store = make_store()
        with pytest.raises(ValidationError, match="Invalid date"):
            store.add("15/01/2024", 80.0)

    def test_time_of_day_rejected(self):
        """Test that a date carrying a time cannot be stored."""
        store = make_store()
        store.add("2024-01-01", 80.0)

        with pytest.raises(ValidationError, match="Invalid date"):
            store.add("2024-01-15T18:30", 85.0)

        assert len(store.snapshot().connections) == 1

    def test_observer_runs_under_store_lock(self):
        """Test that other threads cannot touch the store while a mutation is announced."""
        store = make_store()
        acquired = []

        def try_lock(_):
            def worker():
                got = store.lock.acquire(blocking=False)
                if got:
                    store.lock.release()
                acquired.append(got)
            thread = threading.Thread(target=worker)
            thread.start()
            thread.join()

        observer = Mock()
        observer.connection_added.side_effect = try_lock
        store.attach(observer)

        store.add("2024-01-01", 80.0)

        assert acquired == [False]

    def test_observer_notified(self):
        """Test the added hook."""
        store = make_store()
        observer = Mock()
        store.attach(observer)

        connection = store.add("2024-01-01", 80.0)

        observer.connection_added.assert_called_once_with(connection)


class TestRemoveAndClear:
    """Test deletion operations."""

    def test_remove_existing(self):
        """Test removing by id."""
        store = make_store()
        observer = Mock()
        store.attach(observer)
        connection = store.add("2024-01-01", 80.0)

        assert store.remove(connection.id) is True
        assert store.snapshot().connections == ()
        observer.connection_removed.assert_called_once_with(connection.id)

    def test_remove_unknown_is_noop(self):
        """Test that unknown ids change nothing."""
        local_storage = Mock(spec=LocalStorage)
        store = make_store(local_storage=local_storage)
        observer = Mock()
        store.attach(observer)
        store.add("2024-01-01", 80.0)
        local_storage.save_state.reset_mock()

        assert store.remove(12345) is False
        assert len(store.snapshot().connections) == 1
        local_storage.save_state.assert_not_called()
        observer.connection_removed.assert_not_called()

    def test_clear_keeps_settings(self):
        """Test that clearing history leaves settings alone."""
        store = make_store(settings=Settings(bottle_weight=19, bottle_price=40))
        observer = Mock()
        store.attach(observer)
        ids = [store.add("2024-01-01", 80.0).id, store.add("2024-01-15", 80.0).id]

        store.clear()

        assert store.snapshot().connections == ()
        assert store.settings == Settings(bottle_weight=19, bottle_price=40)
        cleared = observer.connections_cleared.call_args[0][0]
        assert sorted(cleared) == sorted(ids)


class TestSettings:
    """Test settings updates."""

    def test_update_settings(self):
        """Test valid update and notification."""
        store = make_store()
        observer = Mock()
        store.attach(observer)

        settings = store.update_settings(19.0, 40.0)

        assert store.settings == settings
        observer.settings_updated.assert_called_once_with(settings)

    def test_invalid_weight_rejected(self):
        """Test non-positive bottle weight."""
        store = make_store()
        with pytest.raises(ValidationError, match="bottle_weight must be > 0"):
            store.update_settings(0, 40.0)
        assert store.settings == Settings()

    def test_negative_price_rejected(self):
        """Test negative bottle price."""
        store = make_store()
        with pytest.raises(ValidationError, match="bottle_price cannot be negative"):
            store.update_settings(47.0, -1)


class TestReplace:
    """Test whole-store replacement."""

    def test_replace_reports_previous_ids(self):
        """Test the replaced hook."""
        store = make_store()
        observer = Mock()
        old = store.add("2024-01-01", 80.0)
        store.attach(observer)
        incoming = [Connection(id=7, date="2024-02-01", cost=90.0, timestamp="")]

        snapshot = store.replace(incoming, Settings(bottle_weight=47, bottle_price=90))

        assert snapshot.connections == tuple(incoming)
        observer.store_replaced.assert_called_once_with(snapshot, [old.id])

    def test_duplicate_ids_rejected(self):
        """Test that replacement requires unique ids."""
        store = make_store()
        duplicate = [
            Connection(id=1, date="2024-01-01", cost=80.0, timestamp=""),
            Connection(id=1, date="2024-01-15", cost=80.0, timestamp=""),
        ]
        with pytest.raises(ValidationError, match="unique"):
            store.replace(duplicate, Settings())

    def test_remote_merge_does_not_notify(self):
        """Test that remote merges skip the observer."""
        store = make_store()
        observer = Mock()
        store.attach(observer)

        store.apply_remote_connections([Connection(id=5, date="2024-01-01", cost=80.0, timestamp="")])
        store.apply_remote_settings(Settings(bottle_weight=19, bottle_price=40))

        assert len(store.snapshot().connections) == 1
        assert store.settings.bottle_price == 40
        assert observer.method_calls == []

    def test_ids_stay_above_merged_ids(self):
        """Test new ids after merging a record from the future."""
        store = make_store()
        future_id = int(FIXED_NOW.timestamp() * 1000) + 1000
        store.apply_remote_connections([Connection(id=future_id, date="2024-01-01", cost=80.0, timestamp="")])

        assert store.add("2024-01-02", 80.0).id == future_id + 1


class TestLoad:
    """Test reload from real local storage."""

    def test_state_survives_restart(self):
        """Test that a new store sees the previous session's data."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            first = RecordStore(local_storage=LocalStorage(db_path), now=fixed_clock)
            first.add("2024-01-01", 80.0)
            first.update_settings(19.0, 40.0)

            second = RecordStore(local_storage=LocalStorage(db_path), now=fixed_clock)
            snapshot = second.load()

            assert len(snapshot.connections) == 1
            assert snapshot.settings == Settings(bottle_weight=19.0, bottle_price=40.0)
            assert second.add("2024-01-02", 80.0).id == first.snapshot().connections[0].id + 1
