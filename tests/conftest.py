import pytest
import pytest_asyncio

from medledger.service import HealthLedger
from tests.helpers import FakeClock, FakeNetwork, make_connector


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def offline_network():
    return FakeNetwork(fail_connect=True)


@pytest_asyncio.fixture
async def ledger(network, clock):
    """HealthLedger backed by a reachable fake node"""
    service = HealthLedger(connector=make_connector(network), clock=clock)
    yield service
    await service.close()


@pytest_asyncio.fixture
async def offline_ledger(offline_network, clock):
    """HealthLedger whose endpoints all refuse connections"""
    service = HealthLedger(connector=make_connector(offline_network), clock=clock)
    yield service
    await service.close()
