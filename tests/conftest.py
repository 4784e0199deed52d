import asyncio

import pytest

from milight import BridgeGeneration, DiscoveredBridge, MilightTransportError


IBOX_MAC = "ac:cf:23:a1:b2:c3"
LEGACY_MAC = "ac:cf:23:00:11:22"


class FakeTransport:
    """Records command batches instead of sending them"""

    def __init__(self, ip, generation, logger=None):
        self.ip = ip
        self.generation = generation
        self.logger = logger
        self.sent = []
        self.closed = False
        self.fail = False

    async def send_commands(self, commands):
        if self.fail:
            raise MilightTransportError(f"send to {self.ip} failed")
        self.sent.append(list(commands))
        return True

    async def close(self):
        self.closed = True

    @property
    def names(self):
        return [[command.name for command in batch] for batch in self.sent]


class FakeDiscovery:
    """Async discover() stand-in. Each call returns the next queued result, the last one repeats."""

    def __init__(self, *results, delay=0.0):
        self.results = list(results) or [[]]
        self.delay = delay
        self.calls = []

    async def __call__(self, bridge_type="all", timeout=3.0, logger=None):
        self.calls.append(bridge_type)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return list(result)


@pytest.fixture
def transport_factory():
    created = []

    def factory(ip, generation, logger=None):
        transport = FakeTransport(ip, generation, logger)
        created.append(transport)
        return transport

    factory.created = created
    return factory


@pytest.fixture
def ibox_found():
    return DiscoveredBridge(mac=IBOX_MAC, ip="192.0.2.10", generation=BridgeGeneration.IBOX, name="iBox")


@pytest.fixture
def legacy_found():
    return DiscoveredBridge(mac=LEGACY_MAC, ip="192.0.2.20", generation=BridgeGeneration.LEGACY)


@pytest.fixture
def fake_discovery():
    return FakeDiscovery
