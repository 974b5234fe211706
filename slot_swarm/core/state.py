"""
Persistence of the local slot assignment.

The state file records which slot this peer holds and when it last
heartbeated, so a restarted peer knows where it was. It is written with
a temp-file-then-rename so a signal mid-write never leaves a torn file.

Format (kept readable by operator tooling)::

    {
        "peer_slot": 3,
        "peer_host": "peer3",
        "full_domain": "peer3.example.com",
        "public_ip": "203.0.113.7",
        "registered_at": "2026-01-01T00:00:00Z",
        "last_heartbeat": "2026-01-01T00:05:00Z"
    }
"""
import json
import logging
import os
from pathlib import Path
from typing import Optional

from .errors import StateStoreError
from .models import SlotAssignment


class StateStore:
    """
    JSON-file store for the current SlotAssignment.
    """

    def __init__(self, state_file: str):
        self.state_file = Path(state_file).expanduser()
        self.logger = logging.getLogger("StateStore")

    def load(self) -> Optional[SlotAssignment]:
        """
        Read the saved assignment.

        Returns:
            The assignment, or None if no state has been saved yet

        Raises:
            StateStoreError: if the file exists but cannot be read or parsed
        """
        if not self.state_file.exists():
            return None

        try:
            with open(self.state_file, 'r') as f:
                data = json.load(f)
            assignment = SlotAssignment.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StateStoreError(f"Cannot load state from {self.state_file}: {e}") from e

        self.logger.debug(f"📂 Loaded slot {assignment.slot_index} ({assignment.hostname})")
        return assignment

    def save(self, assignment: SlotAssignment) -> None:
        """
        Persist an assignment atomically.

        Raises:
            StateStoreError: if the file cannot be written
        """
        temp_file = self.state_file.with_suffix('.tmp')
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, 'w') as f:
                json.dump(assignment.to_dict(), f, indent=4)
            os.replace(temp_file, self.state_file)
        except OSError as e:
            raise StateStoreError(f"Cannot save state to {self.state_file}: {e}") from e

        self.logger.debug(f"💾 Saved slot {assignment.slot_index} ({assignment.hostname})")

    def exists(self) -> bool:
        return self.state_file.exists()

    def clear(self) -> None:
        """Remove saved state"""
        if self.state_file.exists():
            self.state_file.unlink()
            self.logger.info("🗑️ State cleared")
