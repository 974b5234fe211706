"""
Configuration management for slot-swarm
"""
import os
from pathlib import Path
from typing import Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import ConfigError


KNOWN_STRATEGIES = ("tcp", "http")
KNOWN_PROVIDERS = ("memory", "godaddy", "cloudflare", "digitalocean")

DEFAULT_STATE_FILE = str(Path.home() / ".local" / "share" / "slot-swarm" / "discovery.state")


class ProviderConfig(BaseModel):
    """Credentials and settings for the DNS provider that owns the zone"""
    model_config = ConfigDict(frozen=True)

    name: str = "memory"
    key: str = ""
    secret: str = ""
    zone_id: str = ""
    email: str = ""
    ttl: int = Field(default=600, ge=60)

    @field_validator("name")
    @classmethod
    def _known_provider(cls, value: str) -> str:
        value = value.lower()
        if value not in KNOWN_PROVIDERS:
            raise ValueError(f"unknown DNS provider '{value}' (expected one of {', '.join(KNOWN_PROVIDERS)})")
        return value


class SwarmConfig(BaseModel):
    """Main configuration, fixed for the lifetime of a peer process"""
    model_config = ConfigDict(frozen=True)

    domain: str = "example.com"
    host_prefix: str = "peer"
    max_slots: int = Field(default=100, ge=0)
    check_interval: float = Field(default=300, gt=0)  # seconds, once at slot 0
    heal_interval: float = Field(default=60, gt=0)  # seconds, while compacting
    probe_strategy_order: Tuple[str, ...] = ("http", "tcp")

    # Probing
    nameservers: Tuple[str, ...] = ("8.8.8.8",)
    probe_timeout: float = Field(default=2.0, gt=0)
    probe_budget: float = Field(default=5.0, gt=0)
    retry_delay: float = Field(default=0.5, ge=0)
    tcp_ports: Tuple[int, ...] = (22, 80)
    health_port: int = Field(default=8089, ge=1, le=65535)
    health_path: str = "/health"

    # Claiming
    propagation_delay: float = Field(default=10.0, ge=0)
    max_claim_attempts: int = Field(default=3, ge=1)
    race_backoff: float = Field(default=300, ge=0)

    # Daemon
    tick_timeout: float = Field(default=30.0, gt=0)
    address_cache_ttl: float = Field(default=60.0, ge=0)
    public_ipv4: Optional[str] = None  # skip address lookup when set
    public_ipv6: Optional[str] = None
    state_file: str = DEFAULT_STATE_FILE
    log_level: str = "INFO"
    log_file: Optional[str] = None

    provider: ProviderConfig = Field(default_factory=ProviderConfig)

    @field_validator("probe_strategy_order")
    @classmethod
    def _known_strategies(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        order = tuple(name.strip().lower() for name in value if name.strip())
        unknown = [name for name in order if name not in KNOWN_STRATEGIES]
        if unknown:
            raise ValueError(f"unknown probe strategies: {', '.join(unknown)}")
        return order

    @field_validator("host_prefix")
    @classmethod
    def _valid_prefix(cls, value: str) -> str:
        if not value or not value.replace("-", "").isalnum() or value.startswith("-"):
            raise ValueError(f"invalid host prefix '{value}'")
        return value.lower()

    @field_validator("domain")
    @classmethod
    def _valid_domain(cls, value: str) -> str:
        value = value.strip().rstrip(".").lower()
        labels = value.split(".")
        if len(value) > 253 or len(labels) < 2:
            raise ValueError(f"invalid domain '{value}'")
        for label in labels:
            if not label or len(label) > 63 or label.startswith("-") or label.endswith("-"):
                raise ValueError(f"invalid domain '{value}'")
            if not label.replace("-", "").isalnum():
                raise ValueError(f"invalid domain '{value}'")
        return value

    @model_validator(mode="after")
    def _tick_fits_one_claim(self) -> "SwarmConfig":
        # a tick must be able to probe one slot and confirm one claim
        needed = self.probe_budget + self.propagation_delay
        if self.tick_timeout <= needed:
            raise ValueError(
                f"tick_timeout ({self.tick_timeout}s) must exceed probe_budget + propagation_delay ({needed}s)"
            )
        return self

    def peer_host(self, slot_index: int) -> str:
        """Relative host label for a slot, e.g. ``peer3``"""
        return f"{self.host_prefix}{slot_index}"

    def hostname(self, slot_index: int) -> str:
        """Fully qualified hostname for a slot, e.g. ``peer3.example.com``"""
        return f"{self.peer_host(slot_index)}.{self.domain}"

    @classmethod
    def from_env(cls, base: Optional["SwarmConfig"] = None) -> "SwarmConfig":
        """Create configuration from SWARM_* environment variables, layered over ``base``"""
        data = (base or cls()).model_dump()
        provider = data["provider"]

        scalar_vars = {
            "SWARM_DOMAIN": "domain",
            "SWARM_HOST_PREFIX": "host_prefix",
            "SWARM_MAX_SLOTS": "max_slots",
            "SWARM_CHECK_INTERVAL": "check_interval",
            "SWARM_HEAL_INTERVAL": "heal_interval",
            "SWARM_PROPAGATION_DELAY": "propagation_delay",
            "SWARM_TIMEOUT": "probe_timeout",
            "SWARM_STATE_FILE": "state_file",
            "SWARM_LOG_LEVEL": "log_level",
            "SWARM_LOG_FILE": "log_file",
            "SWARM_PUBLIC_IPV4": "public_ipv4",
            "SWARM_PUBLIC_IPV6": "public_ipv6",
        }
        for env_name, field_name in scalar_vars.items():
            if os.getenv(env_name):
                data[field_name] = os.environ[env_name]

        if os.getenv("SWARM_PROBE_ORDER"):
            data["probe_strategy_order"] = os.environ["SWARM_PROBE_ORDER"].split(",")
        if os.getenv("SWARM_DNS_SERVER"):
            data["nameservers"] = os.environ["SWARM_DNS_SERVER"].split(",")

        provider_vars = {
            "SWARM_DNS_PROVIDER": "name",
            "SWARM_DNS_KEY": "key",
            "SWARM_DNS_SECRET": "secret",
            "SWARM_DNS_ZONE_ID": "zone_id",
            "SWARM_DNS_EMAIL": "email",
        }
        for env_name, field_name in provider_vars.items():
            if os.getenv(env_name):
                provider[field_name] = os.environ[env_name]

        return cls.parse(data)

    @classmethod
    def parse(cls, data: dict) -> "SwarmConfig":
        """Validate a raw mapping, converting validation failures to ConfigError"""
        try:
            return cls(**data)
        except ValueError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def load_from_file(cls, file_path: str) -> "SwarmConfig":
        """Load configuration from JSON file"""
        import json
        try:
            with open(file_path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Cannot read configuration file {file_path}: {e}") from e
        return cls.parse(data)

    def save_to_file(self, file_path: str) -> None:
        """Save configuration to JSON file (credentials included, so 0600)"""
        import json
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)
        os.chmod(path, 0o600)
