"""
Test slot assignment persistence
"""
import json
from datetime import datetime, timezone

import pytest

from slot_swarm.core.errors import StateStoreError
from slot_swarm.core.models import SlotAssignment
from slot_swarm.core.state import StateStore


class TestSlotAssignment:

    def setup_method(self):
        self.registered = datetime(2026, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        self.assignment = SlotAssignment(
            slot_index=3,
            hostname="peer3.example.com",
            owner_address="203.0.113.7",
            registered_at=self.registered,
            last_heartbeat=self.registered,
        )

    def test_to_dict(self):
        assert self.assignment.to_dict() == {
            "peer_slot": 3,
            "peer_host": "peer3",
            "full_domain": "peer3.example.com",
            "public_ip": "203.0.113.7",
            "registered_at": "2026-01-01T00:00:00Z",
            "last_heartbeat": "2026-01-01T00:00:00Z",
        }

    def test_heartbeat_keeps_registration_time(self):
        later = datetime(2026, 1, 1, 0, 5, 0, tzinfo=timezone.utc)
        updated = self.assignment.heartbeat(later)

        assert updated.last_heartbeat == later
        assert updated.registered_at == self.registered
        assert self.assignment.last_heartbeat == self.registered

    def test_negative_slot_rejected(self):
        data = self.assignment.to_dict()
        data["peer_slot"] = -1
        with pytest.raises(ValueError):
            SlotAssignment.from_dict(data)


class TestStateStore:
    """Test the JSON state file"""

    def setup_method(self):
        self.assignment = SlotAssignment(
            slot_index=2,
            hostname="peer2.example.com",
            owner_address="198.51.100.4",
        ).heartbeat(datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc))

    def test_load_missing_returns_none(self, tmp_path):
        store = StateStore(str(tmp_path / "missing.state"))
        assert store.load() is None
        assert not store.exists()

    def test_save_and_load(self, tmp_path):
        store = StateStore(str(tmp_path / "nested" / "discovery.state"))
        store.save(self.assignment)

        loaded = store.load()

        assert loaded.slot_index == 2
        assert loaded.hostname == "peer2.example.com"
        assert loaded.owner_address == "198.51.100.4"
        assert loaded.last_heartbeat == self.assignment.last_heartbeat
        assert not (tmp_path / "nested" / "discovery.tmp").exists()

    def test_file_format(self, tmp_path):
        path = tmp_path / "discovery.state"
        StateStore(str(path)).save(self.assignment)

        data = json.loads(path.read_text())

        assert data["peer_slot"] == 2
        assert data["peer_host"] == "peer2"
        assert data["last_heartbeat"] == "2026-03-01T12:00:00Z"

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "discovery.state"
        path.write_text("{not json")

        with pytest.raises(StateStoreError):
            StateStore(str(path)).load()

    def test_missing_field_raises(self, tmp_path):
        path = tmp_path / "discovery.state"
        path.write_text(json.dumps({"peer_slot": 1}))

        with pytest.raises(StateStoreError):
            StateStore(str(path)).load()

    def test_unwritable_location_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = StateStore(str(blocker / "discovery.state"))

        with pytest.raises(StateStoreError):
            store.save(self.assignment)

    def test_clear(self, tmp_path):
        store = StateStore(str(tmp_path / "discovery.state"))
        store.save(self.assignment)
        store.clear()

        assert not store.exists()
        assert store.load() is None
