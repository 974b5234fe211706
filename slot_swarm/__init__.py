"""
Slot Swarm

Peers that register themselves under sequential DNS hostnames
(peer0, peer1, ...) and keep the numbering compact as peers come and go.
"""

__version__ = "0.1.0"

from .core.config import SwarmConfig
from .core.models import ProbeStatus, SlotAssignment
from .peer import SwarmPeer

__all__ = [
    "SwarmConfig",
    "ProbeStatus",
    "SlotAssignment",
    "SwarmPeer",
]
