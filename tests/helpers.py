import asyncio
import datetime
import logging

from medledger.errors import ConnectionFailure
from medledger.ledger import LedgerConnector

for name in ("medledger.crypto.key_manager", "medledger.ledger"):
    logging.getLogger(name).setLevel(logging.CRITICAL)

SEPOLIA = 11155111
GETH = "Geth/v1.13.5-stable/linux-amd64/go1.21.4"


class FakeClock:
    """Mutable clock; call it for the current time"""

    def __init__(self, start=None):
        self.now = start or datetime.datetime(2025, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += datetime.timedelta(**kwargs)


class FakeLedgerClient:
    """Stands in for Web3LedgerClient without touching the network"""

    def __init__(self, endpoint, chain_id=SEPOLIA, client_version=GETH, block=5_000_000,
                 fail_connect=False, connect_delay=0.0, fail_blocks=False, alive=True):
        self.endpoint = endpoint
        self.chain_id = chain_id
        self.client_version = client_version
        self.block = block
        self.fail_connect = fail_connect
        self.connect_delay = connect_delay
        self.fail_blocks = fail_blocks
        self.alive = alive
        self.closed = False

    async def connect(self):
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.fail_connect:
            raise ConnectionFailure(f"connect failed on {self.endpoint}")

    async def node_info(self):
        return {"chain_id": self.chain_id, "client_version": self.client_version}

    async def block_number(self):
        if self.fail_blocks:
            raise ConnectionFailure(f"eth_blockNumber failed on {self.endpoint}")
        self.block += 1
        return self.block

    async def ping(self):
        return self.alive

    async def close(self):
        self.closed = True


class FakeNetwork:
    """client_factory for LedgerConnector; per-endpoint behaviour via overrides"""

    def __init__(self, overrides=None, **defaults):
        self.overrides = overrides or {}
        self.defaults = defaults
        self.clients = []

    def __call__(self, endpoint):
        options = dict(self.defaults)
        options.update(self.overrides.get(endpoint, {}))
        client = FakeLedgerClient(endpoint, **options)
        self.clients.append(client)
        return client

    @property
    def endpoints(self):
        return [client.endpoint for client in self.clients]


async def no_sleep(_seconds):
    return None


async def wait_until(predicate, timeout=2.0):
    """Poll predicate until it holds or timeout expires"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.005)


ENDPOINTS = ["wss://primary.example", "https://fallback.example"]


def make_connector(network, **kwargs):
    """LedgerConnector over a FakeNetwork with short timeouts and no simulated delay"""
    options = dict(
        endpoints=ENDPOINTS,
        connect_timeout=0.2,
        health_interval=60,
        select_timeout=0.5,
        client_factory=network,
        simulation_delay=(0, 0),
        sleep=no_sleep,
    )
    options.update(kwargs)
    return LedgerConnector(**options)
