"""
Exceptions raised across slot-swarm.

None of these stop the daemon loop: each one degrades to "no action this
tick" at the monitor boundary. Only ConfigError is allowed to abort startup.
"""


class SlotSwarmError(Exception):
    """Base class for slot-swarm errors"""


class ConfigError(SlotSwarmError):
    """Configuration is invalid or names an unknown provider"""


class ResolutionError(SlotSwarmError):
    """A DNS lookup failed or timed out"""

    def __init__(self, hostname: str, message: str):
        self.hostname = hostname
        super().__init__(f"DNS resolution failed for '{hostname}': {message}")


class ProbeError(SlotSwarmError):
    """A reachability check could not complete"""


class PublishError(SlotSwarmError):
    """The DNS provider rejected a record update (auth, rate limit, bad request)"""

    def __init__(self, hostname: str, message: str, status: int = None):
        self.hostname = hostname
        self.status = status
        super().__init__(f"Record update for '{hostname}' failed: {message}")


class NoSlotAvailable(SlotSwarmError):
    """Every slot in the configured range is occupied"""

    def __init__(self, max_slots: int):
        self.max_slots = max_slots
        super().__init__(f"No available slots found in first {max_slots} positions")


class StateStoreError(SlotSwarmError):
    """The local state file could not be read or written"""
