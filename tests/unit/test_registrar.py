"""
Test optimistic slot claims
"""
import asyncio

from slot_swarm.core.errors import PublishError
from slot_swarm.core.models import ClaimOutcome
from slot_swarm.core.state import StateStore
from slot_swarm.discovery.registrar import Registrar
from slot_swarm.dns.providers import MemoryZone

from fakes import make_config


class RejectingZone(MemoryZone):
    async def update(self, hostname, record_type, address):
        raise PublishError(hostname, "unauthorized (401)", status=401)


class TestRegistrar:

    def make_registrar(self, tmp_path, zone, name="peer", **overrides):
        config = make_config(tmp_path, name=name, **overrides)
        return Registrar(config, zone, StateStore(config.state_file))

    def test_register_success(self, tmp_path):
        zone = MemoryZone()
        registrar = self.make_registrar(tmp_path, zone)

        outcome = asyncio.run(registrar.register(0, "192.0.2.10"))

        assert outcome is ClaimOutcome.SUCCESS
        assert zone.records["peer0.example.com"] == {"A": "192.0.2.10"}
        assert registrar.last_claim.hostname == "peer0.example.com"
        assert registrar.store.load().slot_index == 0

    def test_register_ipv6_uses_aaaa(self, tmp_path):
        zone = MemoryZone()
        registrar = self.make_registrar(tmp_path, zone)

        outcome = asyncio.run(registrar.register(1, "2001:db8:0:0::1"))

        assert outcome is ClaimOutcome.SUCCESS
        assert zone.records["peer1.example.com"] == {"AAAA": "2001:db8::1"}

    def test_concurrent_claims_have_one_winner(self, tmp_path):
        zone = MemoryZone()
        first = self.make_registrar(tmp_path, zone, name="a", propagation_delay=0.01)
        second = self.make_registrar(tmp_path, zone, name="b", propagation_delay=0.01)

        async def race():
            return await asyncio.gather(
                first.register(0, "192.0.2.10"),
                second.register(0, "192.0.2.11"),
            )

        outcomes = asyncio.run(race())

        assert sorted(o.value for o in outcomes) == ["race_lost", "success"]
        winner, loser = (first, second) if outcomes[0] is ClaimOutcome.SUCCESS else (second, first)
        assert zone.records["peer0.example.com"]["A"] == winner.last_claim.owner_address
        assert loser.last_claim is None
        assert loser.contested_slots() == {0}
        assert not loser.store.exists()

    def test_race_backoff_expires(self, tmp_path):
        zone = MemoryZone()
        asyncio.run(zone.update("peer0.example.com", "A", "192.0.2.99"))

        class OverwrittenZone(MemoryZone):
            async def update(self, hostname, record_type, address):
                self.writes += 1

            async def resolve(self, hostname):
                return await zone.resolve(hostname)

        registrar = self.make_registrar(tmp_path, OverwrittenZone(), race_backoff=0)

        assert asyncio.run(registrar.register(0, "192.0.2.10")) is ClaimOutcome.RACE_LOST
        assert registrar.contested_slots() == set()

    def test_publish_error(self, tmp_path):
        registrar = self.make_registrar(tmp_path, RejectingZone())

        outcome = asyncio.run(registrar.register(0, "192.0.2.10"))

        assert outcome is ClaimOutcome.PUBLISH_ERROR
        assert registrar.last_claim is None
        assert registrar.contested_slots() == set()
        assert not registrar.store.exists()

    def test_pending_while_confirming(self, tmp_path):
        zone = MemoryZone()
        registrar = self.make_registrar(tmp_path, zone, propagation_delay=0.05)

        async def claim():
            task = asyncio.create_task(registrar.register(3, "192.0.2.10"))
            await asyncio.sleep(0.01)
            seen = registrar.pending
            await task
            return seen

        assert asyncio.run(claim()) == "peer3.example.com"
        assert registrar.pending is None

    def test_pending_cleared_after_publish_error(self, tmp_path):
        registrar = self.make_registrar(tmp_path, RejectingZone())

        asyncio.run(registrar.register(0, "192.0.2.10"))

        assert registrar.pending is None

    def test_adopt_does_not_write(self, tmp_path):
        zone = MemoryZone()
        registrar = self.make_registrar(tmp_path, zone)

        assignment = registrar.adopt(3, "192.0.2.10")

        assert assignment.hostname == "peer3.example.com"
        assert zone.writes == 0
        assert registrar.store.load().slot_index == 3

    def test_persist_failure_keeps_claim(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        zone = MemoryZone()
        registrar = self.make_registrar(tmp_path, zone, state_file=str(blocker / "discovery.state"))

        outcome = asyncio.run(registrar.register(0, "192.0.2.10"))

        assert outcome is ClaimOutcome.SUCCESS
        assert registrar.last_claim.slot_index == 0
