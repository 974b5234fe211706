"""
Test configuration loading and validation
"""
import os
import stat
import tempfile

import pytest

from slot_swarm.core.config import ProviderConfig, SwarmConfig
from slot_swarm.core.errors import ConfigError


class TestConfig:
    """Test configuration management"""

    def test_defaults(self):
        config = SwarmConfig()

        assert config.host_prefix == "peer"
        assert config.max_slots == 100
        assert config.check_interval == 300
        assert config.heal_interval == 60
        assert config.probe_strategy_order == ("http", "tcp")
        assert config.provider.name == "memory"

    def test_hostname(self):
        config = SwarmConfig(domain="Example.COM.", host_prefix="node")

        assert config.domain == "example.com"
        assert config.peer_host(3) == "node3"
        assert config.hostname(0) == "node0.example.com"

    @pytest.mark.parametrize("domain", ["localhost", "-bad.example.com", "a..b", "exa_mple.com"])
    def test_invalid_domain(self, domain):
        with pytest.raises(ValueError):
            SwarmConfig(domain=domain)

    def test_invalid_prefix(self):
        with pytest.raises(ValueError):
            SwarmConfig(host_prefix="peer.")

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ConfigError):
            SwarmConfig.parse({"probe_strategy_order": ["tcp", "icmp"]})

    def test_strategy_order_normalized(self):
        config = SwarmConfig(probe_strategy_order=(" TCP", "http"))
        assert config.probe_strategy_order == ("tcp", "http")

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValueError):
            ProviderConfig(name="route53")

    def test_zero_max_slots_allowed(self):
        assert SwarmConfig(max_slots=0).max_slots == 0

    def test_negative_max_slots_rejected(self):
        with pytest.raises(ConfigError):
            SwarmConfig.parse({"max_slots": -1})

    def test_tick_timeout_must_fit_a_claim(self):
        with pytest.raises(ConfigError):
            SwarmConfig.parse({"tick_timeout": 12, "probe_budget": 5, "propagation_delay": 10})

        config = SwarmConfig.parse({"tick_timeout": 16, "probe_budget": 5, "propagation_delay": 10})
        assert config.tick_timeout == 16

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SWARM_DOMAIN", "swarm.example.org")
        monkeypatch.setenv("SWARM_MAX_SLOTS", "25")
        monkeypatch.setenv("SWARM_PROBE_ORDER", "tcp")
        monkeypatch.setenv("SWARM_DNS_SERVER", "1.1.1.1,9.9.9.9")
        monkeypatch.setenv("SWARM_DNS_PROVIDER", "godaddy")
        monkeypatch.setenv("SWARM_DNS_KEY", "k")
        monkeypatch.setenv("SWARM_DNS_SECRET", "s")

        config = SwarmConfig.from_env()

        assert config.domain == "swarm.example.org"
        assert config.max_slots == 25
        assert config.probe_strategy_order == ("tcp",)
        assert config.nameservers == ("1.1.1.1", "9.9.9.9")
        assert config.provider.name == "godaddy"
        assert config.provider.secret == "s"

    def test_from_env_layers_over_base(self, monkeypatch):
        monkeypatch.setenv("SWARM_HEAL_INTERVAL", "15")
        base = SwarmConfig(domain="base.example.com", heal_interval=30)

        config = SwarmConfig.from_env(base)

        assert config.domain == "base.example.com"
        assert config.heal_interval == 15

    def test_config_serialization(self):
        """Test configuration serialization to/from file"""
        config = SwarmConfig(
            domain="example.net",
            max_slots=12,
            provider=ProviderConfig(name="cloudflare", key="token", zone_id="zone"),
        )

        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "config.json")
            config.save_to_file(path)

            loaded = SwarmConfig.load_from_file(path)

            assert loaded == config
            assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_load_missing_file(self):
        with pytest.raises(ConfigError):
            SwarmConfig.load_from_file("/nonexistent/slot-swarm.json")


if __name__ == '__main__':
    pytest.main([__file__])
