"""
Test the command line interface
"""
import json

import pytest
from click.testing import CliRunner

from slot_swarm.cli import cli
from slot_swarm.core.models import SlotAssignment
from slot_swarm.core.state import StateStore


class TestCli:

    def setup_method(self):
        self.runner = CliRunner()

    @pytest.fixture(autouse=True)
    def keep_test_logging(self, monkeypatch):
        monkeypatch.setattr("slot_swarm.cli.setup_logging", lambda *args, **kwargs: None)

    def init(self, tmp_path, *extra):
        path = str(tmp_path / "config.json")
        result = self.runner.invoke(cli, ["init-config", "-o", path, "--domain", "swarm.example.com", *extra])
        return path, result

    def test_init_config(self, tmp_path):
        path, result = self.init(tmp_path, "--prefix", "node")

        assert result.exit_code == 0
        with open(path) as f:
            data = json.load(f)
        assert data["domain"] == "swarm.example.com"
        assert data["host_prefix"] == "node"
        assert data["provider"]["name"] == "memory"

    def test_init_config_rejects_bad_domain(self, tmp_path):
        result = self.runner.invoke(cli, ["init-config", "-o", str(tmp_path / "c.json"), "--domain", "nodots"])
        assert result.exit_code == 1

    def test_status_without_state(self, tmp_path, monkeypatch):
        path, _ = self.init(tmp_path)
        monkeypatch.setenv("SWARM_STATE_FILE", str(tmp_path / "none.state"))

        result = self.runner.invoke(cli, ["--config", path, "status"])

        assert result.exit_code == 0
        assert "No discovery state found" in result.output

    def test_status_prints_state(self, tmp_path, monkeypatch):
        path, _ = self.init(tmp_path)
        state_file = tmp_path / "discovery.state"
        StateStore(str(state_file)).save(SlotAssignment(4, "peer4.swarm.example.com", "192.0.2.10"))
        monkeypatch.setenv("SWARM_STATE_FILE", str(state_file))

        result = self.runner.invoke(cli, ["--config", path, "status"])

        assert result.exit_code == 0
        assert '"peer_slot": 4' in result.output

    def test_bad_config_file(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{")

        result = self.runner.invoke(cli, ["--config", str(bad), "status"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_scan_memory_zone(self, tmp_path, monkeypatch):
        path, _ = self.init(tmp_path)
        monkeypatch.setenv("SWARM_PUBLIC_IPV4", "192.0.2.10")
        monkeypatch.setenv("SWARM_STATE_FILE", str(tmp_path / "scan.state"))

        result = self.runner.invoke(cli, ["--config", path, "scan", "--limit", "3"])

        assert result.exit_code == 0
        assert result.output.count("free") == 3
