"""
Domain models shared by the discovery components
"""
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ProbeStatus(Enum):
    """What the prober concluded about a slot hostname"""
    OCCUPIED_SELF = "occupied_self"
    OCCUPIED_OTHER = "occupied_other"
    FREE = "free"
    OCCUPIED_STALE = "occupied_stale"
    UNKNOWN = "unknown"

    @property
    def claimable(self) -> bool:
        """True only for a slot with no record at all"""
        return self is ProbeStatus.FREE

    @property
    def contestable(self) -> bool:
        """True for a slot the monitor may take over from below"""
        return self in (ProbeStatus.FREE, ProbeStatus.OCCUPIED_STALE)


class ClaimOutcome(Enum):
    """Result of an optimistic two-phase claim"""
    SUCCESS = "success"
    RACE_LOST = "race_lost"
    PUBLISH_ERROR = "publish_error"


class MonitorState(Enum):
    SETTLED = "settled"
    SCANNING_LOWER = "scanning_lower"
    MIGRATING = "migrating"
    FAILED_MIGRATION = "failed_migration"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_ts(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class SlotAssignment:
    """The slot this peer currently holds"""
    slot_index: int
    hostname: str
    owner_address: str
    registered_at: datetime = field(default_factory=utc_now)
    last_heartbeat: datetime = field(default_factory=utc_now)

    def heartbeat(self, now: Optional[datetime] = None) -> "SlotAssignment":
        return replace(self, last_heartbeat=now or utc_now())

    @property
    def peer_host(self) -> str:
        return self.hostname.split(".", 1)[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "peer_slot": self.slot_index,
            "peer_host": self.peer_host,
            "full_domain": self.hostname,
            "public_ip": self.owner_address,
            "registered_at": _format_ts(self.registered_at),
            "last_heartbeat": _format_ts(self.last_heartbeat),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SlotAssignment":
        slot_index = int(data["peer_slot"])
        if slot_index < 0:
            raise ValueError(f"negative slot index {slot_index}")
        return cls(
            slot_index=slot_index,
            hostname=data["full_domain"],
            owner_address=data["public_ip"],
            registered_at=_parse_ts(data["registered_at"]),
            last_heartbeat=_parse_ts(data["last_heartbeat"]),
        )


@dataclass
class TickReport:
    """Summary of one monitor tick, used for logging and the CLI"""
    started_at: float = field(default_factory=time.monotonic)
    previous_slot: Optional[int] = None
    slot: Optional[int] = None
    final_state: MonitorState = MonitorState.SETTLED
    action: str = "none"
    error: Optional[str] = None

    @property
    def slot_changed(self) -> bool:
        return self.slot != self.previous_slot
