"""
Ledger connection management.

A LedgerConnector owns the single connection to an EVM JSON-RPC node. The
connection is made lazily, trying each configured endpoint in order, and is
then watched by a periodic health ping. Operations ask the connector for an
anchoring strategy: LedgerBacked when the node answers in time, Simulated
otherwise.
"""

import asyncio
import logging
import random
from enum import Enum
from typing import Callable, List, Optional, Tuple

from web3 import AsyncHTTPProvider, AsyncWeb3, WebSocketProvider

from medledger.constants import (
    CHAIN_NAMES,
    LEDGER_CONNECT_TIMEOUT,
    LEDGER_ENDPOINTS,
    LEDGER_HEALTH_INTERVAL,
    LEDGER_REQUEST_TIMEOUT,
    LEDGER_SELECT_TIMEOUT,
    SIMULATION_DELAY_MAX,
    SIMULATION_DELAY_MIN,
    is_valid_endpoint,
)
from medledger.errors import ConnectionFailure, LedgerError
from medledger.models import LedgerAnchor, LedgerInfo, utc_now

logger = logging.getLogger(__name__)


def chain_name(chain_id: int) -> str:
    return CHAIN_NAMES.get(chain_id, f"chain-{chain_id}")


def parse_client_version(client_version: str) -> Tuple[str, str]:
    """Split a web3_clientVersion string into node name and version

    'Geth/v1.13.5-stable/linux-amd64/go1.21.4' -> ('Geth', 'v1.13.5-stable')
    """
    parts = (client_version or "").split("/")
    name = parts[0] or "unknown"
    version = parts[1] if len(parts) > 1 else "unknown"
    return name, version


class Web3LedgerClient:
    """Thin async adapter over web3.

    Every failure raised by web3 or the transport is re-raised as
    ConnectionFailure so callers only deal with one exception family.
    """

    def __init__(self, endpoint: str, request_timeout: float = LEDGER_REQUEST_TIMEOUT):
        self.endpoint = endpoint
        self.request_timeout = request_timeout
        self.persistent = endpoint.startswith(("ws://", "wss://"))

        # Pick the provider based on the URL scheme
        if self.persistent:
            logger.info(f"Using WebSocketProvider for {endpoint}")
            self.w3 = AsyncWeb3(WebSocketProvider(endpoint, request_timeout=request_timeout))
        else:
            logger.info(f"Using AsyncHTTPProvider for {endpoint}")
            self.w3 = AsyncWeb3(AsyncHTTPProvider(endpoint))

    async def _call(self, what, awaitable):
        try:
            return await asyncio.wait_for(awaitable, self.request_timeout)
        except asyncio.TimeoutError as e:
            raise ConnectionFailure(f"{what} timed out on {self.endpoint}") from e
        except Exception as e:
            raise ConnectionFailure(f"{what} failed on {self.endpoint}: {e}") from e

    async def connect(self):
        """Open the connection and check the node answers"""
        if self.persistent:
            await self._call("connect", self.w3.provider.connect())
        if not await self._call("is_connected", self.w3.is_connected()):
            raise ConnectionFailure(f"Node at {self.endpoint} is not responding")

    async def node_info(self) -> dict:
        chain_id = await self._call("eth_chainId", self.w3.eth.chain_id)
        response = await self._call("web3_clientVersion", self.w3.provider.make_request("web3_clientVersion", []))
        return {
            "chain_id": int(chain_id),
            "client_version": response.get("result", ""),
        }

    async def block_number(self) -> int:
        return int(await self._call("eth_blockNumber", self.w3.eth.block_number))

    async def ping(self) -> bool:
        """Return True if the node answers; WebSocket clients try to reopen once"""
        try:
            if await self._call("is_connected", self.w3.is_connected()):
                return True
            if self.persistent:
                await self.connect()
                return True
        except ConnectionFailure as e:
            logger.debug(f"Ping failed: {e}")
        return False

    async def close(self):
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if disconnect is not None:
            await self._call("disconnect", disconnect())


class ConnectivityEvent(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTED = "reconnected"


class LedgerBacked:
    """Anchors operations against the live chain head"""

    simulated = False

    def __init__(self, client, chain: str, endpoint: str, timeout: float = LEDGER_CONNECT_TIMEOUT):
        self.client = client
        self.chain = chain
        self.endpoint = endpoint
        self.timeout = timeout

    async def anchor(self, operation: str, data_hash: str) -> LedgerAnchor:
        """Record the block height an operation was committed at

        Raises:
            ConnectionFailure: If the node stops answering
        """
        try:
            block = await asyncio.wait_for(self.client.block_number(), self.timeout)
        except asyncio.TimeoutError as e:
            raise ConnectionFailure(f"Timed out anchoring {operation}") from e
        logger.info(f"Anchored {operation} {data_hash[:10]} at block {block} on {self.chain}")
        return LedgerAnchor(
            operation=operation,
            data_hash=data_hash,
            chain=self.chain,
            block_number=block,
            endpoint=self.endpoint,
            anchored_at=utc_now(),
        )


class Simulated:
    """Stands in for the ledger with an artificial confirmation delay"""

    simulated = True

    def __init__(self, delay: Tuple[float, float] = (SIMULATION_DELAY_MIN, SIMULATION_DELAY_MAX), sleep=asyncio.sleep):
        self.delay = delay
        self.sleep = sleep

    async def anchor(self, operation: str, data_hash: str) -> None:
        await self.sleep(random.uniform(*self.delay))
        logger.info(f"Simulated {operation} {data_hash[:10]}")
        return None


class LedgerConnector:
    """Single, lazily established ledger connection with failover and health checks

    Args:
        endpoints: Ordered endpoint URLs (defaults to LEDGER_ENDPOINTS)
        connect_timeout: Seconds allowed per endpoint handshake
        health_interval: Seconds between health pings
        select_timeout: Seconds an operation waits before simulating
        client_factory: Callable building a client for an endpoint URL
        simulation_delay: (min, max) seconds of simulated confirmation delay
        sleep: Coroutine used for the simulated delay
    """

    def __init__(
        self,
        endpoints: Optional[List[str]] = None,
        connect_timeout: float = LEDGER_CONNECT_TIMEOUT,
        health_interval: float = LEDGER_HEALTH_INTERVAL,
        select_timeout: float = LEDGER_SELECT_TIMEOUT,
        client_factory: Callable = Web3LedgerClient,
        simulation_delay: Tuple[float, float] = (SIMULATION_DELAY_MIN, SIMULATION_DELAY_MAX),
        sleep=asyncio.sleep,
    ):
        self.endpoints = list(endpoints if endpoints is not None else LEDGER_ENDPOINTS)
        self.connect_timeout = connect_timeout
        self.health_interval = health_interval
        self.select_timeout = select_timeout
        self.client_factory = client_factory
        self.simulation_delay = simulation_delay
        self.sleep = sleep

        self.connected = False
        self.client = None
        self.endpoint: Optional[str] = None
        self.chain: Optional[str] = None
        self.node_name: Optional[str] = None
        self.node_version: Optional[str] = None
        self.error: Optional[str] = None

        self._connect_task: Optional[asyncio.Task] = None
        self._health_task: Optional[asyncio.Task] = None
        self._listeners: List[Callable] = []

    def subscribe(self, listener: Callable):
        """Register listener(event) for connectivity changes"""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _publish(self, event: ConnectivityEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Connectivity listener failed on {event.value}")

    def _connection(self) -> asyncio.Task:
        # Every caller shares the first attempt; a failed attempt is never retried
        if self._connect_task is None:
            self._connect_task = asyncio.ensure_future(self._connect())
            self._connect_task.add_done_callback(self._connect_done)
        return self._connect_task

    @staticmethod
    def _connect_done(task: asyncio.Task):
        if not task.cancelled():
            task.exception()

    async def ensure_connected(self):
        """Return the active client, connecting on first use

        Raises:
            ConnectionFailure: If no endpoint could be reached or the connection was lost
        """
        client = await self._connection()
        if not self.connected:
            raise ConnectionFailure(self.error or "Ledger connection lost")
        return client

    async def _connect(self):
        for endpoint in self.endpoints:
            if not is_valid_endpoint(endpoint):
                logger.error(f"Skipping invalid ledger endpoint: {endpoint!r}")
                continue

            logger.info(f"Connecting to ledger endpoint {endpoint}")
            client = None
            try:
                client = self.client_factory(endpoint)
                await asyncio.wait_for(client.connect(), self.connect_timeout)
                info = await asyncio.wait_for(client.node_info(), self.connect_timeout)
            except (ConnectionFailure, asyncio.TimeoutError) as e:
                logger.error(f"Failed to connect to {endpoint}: {str(e) or 'timed out'}")
                if client is not None:
                    await self._discard(client)
                continue

            self.client = client
            self.endpoint = endpoint
            self.chain = chain_name(info["chain_id"])
            self.node_name, self.node_version = parse_client_version(info["client_version"])
            self.connected = True
            self.error = None
            logger.info(f"Connected to {self.chain} via {endpoint} ({self.node_name} {self.node_version})")

            self._health_task = asyncio.ensure_future(self._health_loop())
            self._publish(ConnectivityEvent.CONNECTED)
            return client

        self.connected = False
        self.error = "All ledger endpoints failed"
        logger.error(self.error)
        raise ConnectionFailure(self.error)

    async def _discard(self, client):
        try:
            await client.close()
        except ConnectionFailure as e:
            logger.debug(f"Error closing client: {e}")

    async def _health_loop(self):
        while True:
            await asyncio.sleep(self.health_interval)
            try:
                alive = await asyncio.wait_for(self.client.ping(), self.connect_timeout)
            except (ConnectionFailure, asyncio.TimeoutError):
                alive = False

            if alive and not self.connected:
                self.connected = True
                self.error = None
                logger.info(f"Reconnected to {self.endpoint}")
                self._publish(ConnectivityEvent.RECONNECTED)
            elif not alive and self.connected:
                self.connected = False
                self.error = "Ledger health check failed"
                logger.warning(f"Lost connection to {self.endpoint}")
                self._publish(ConnectivityEvent.DISCONNECTED)

    def simulated(self) -> Simulated:
        return Simulated(self.simulation_delay, self.sleep)

    async def select_strategy(self, timeout: Optional[float] = None):
        """Choose how the next operation is anchored

        Races the (shared) connection attempt against a timeout. Returns
        LedgerBacked when connected in time, Simulated otherwise.
        """
        timeout = self.select_timeout if timeout is None else timeout
        try:
            await asyncio.wait_for(asyncio.shield(self._connection()), timeout)
        except (LedgerError, asyncio.TimeoutError) as e:
            logger.warning(f"Ledger unavailable, using simulation: {str(e) or 'timed out'}")
            return self.simulated()

        if not self.connected:
            logger.warning(f"Ledger unavailable, using simulation: {self.error}")
            return self.simulated()
        return LedgerBacked(self.client, self.chain, self.endpoint, self.connect_timeout)

    async def commit(self, operation: str, data_hash: str) -> Optional[LedgerAnchor]:
        """Anchor an operation, falling back to simulation on any ledger error

        Returns:
            LedgerAnchor when ledger-backed, None when simulated
        """
        strategy = await self.select_strategy()
        try:
            return await strategy.anchor(operation, data_hash)
        except LedgerError as e:
            logger.warning(f"Ledger failed during {operation}, falling back to simulation: {e}")
            return await self.simulated().anchor(operation, data_hash)

    async def status(self) -> LedgerInfo:
        """Snapshot of the connection, connecting first if nobody has yet"""
        try:
            await asyncio.wait_for(asyncio.shield(self._connection()), self.select_timeout)
        except (LedgerError, asyncio.TimeoutError) as e:
            if self.error is None:
                self.error = str(e) or "Timed out connecting to the ledger"

        if not self.connected or self.client is None:
            return LedgerInfo(
                connected=False,
                network_status="disconnected",
                endpoint=self.endpoint,
                simulation_mode=True,
                error=self.error or "Not connected to the ledger",
            )

        try:
            block = await asyncio.wait_for(self.client.block_number(), self.connect_timeout)
        except (ConnectionFailure, asyncio.TimeoutError) as e:
            return LedgerInfo(
                connected=False,
                network_status="error",
                chain=self.chain,
                endpoint=self.endpoint,
                simulation_mode=True,
                error=str(e) or "Timed out reading the block number",
            )

        return LedgerInfo(
            connected=True,
            network_status="connected",
            chain=self.chain,
            node_name=self.node_name,
            node_version=self.node_version,
            current_block=block,
            endpoint=self.endpoint,
        )

    async def close(self):
        """Stop the health check and close the provider"""
        for task in (self._health_task, self._connect_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, LedgerError):
                    pass
        self._health_task = None

        if self.client is not None:
            await self._discard(self.client)
            logger.info(f"Closed ledger connection to {self.endpoint}")
        self.client = None
        self.connected = False
