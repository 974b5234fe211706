import pytest

from slot_swarm.dns.providers import MemoryZone

from fakes import FakeNetwork


@pytest.fixture
def zone():
    return MemoryZone()


@pytest.fixture
def network():
    return FakeNetwork()
