"""
Milight bridge discovery.

Bridges answer a UDP broadcast on port 48899 with "ip,mac,name". Legacy
(v3/v4) bridges answer the "Link_Wi-Fi" probe, iBox (v6) bridges answer
"HF-A11ASSISTHREAD". Each probe runs on its own socket so the replies can be
attributed to a generation.

Example usage:
async def main():
    for bridge in await discover_bridges("all", timeout=3.0):
        print(bridge.generation.value, bridge.mac, bridge.ip)

asyncio.run(main())
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..api.types import BridgeGeneration
from ..exceptions import MilightTransportError


# Constants
class DiscoveryConst:
    """Constants for bridge discovery"""
    PORT = 48899
    BROADCAST_ADDRESS = "255.255.255.255"
    TIMEOUT = 3.0  # seconds to collect replies
    PROBES: dict[BridgeGeneration, bytes] = {
        BridgeGeneration.LEGACY: b"Link_Wi-Fi",
        BridgeGeneration.IBOX: b"HF-A11ASSISTHREAD",
    }


@dataclass
class DiscoveredBridge:
    """A bridge that answered a discovery probe"""
    mac: str
    ip: str
    generation: BridgeGeneration
    name: str = ""
    timestamp: float = field(default_factory=time.time)


def normalise_mac(mac: str) -> str:
    """'ACCF23A1B2C3' or 'AC-CF-23-...' -> 'ac:cf:23:a1:b2:c3'"""
    digits = "".join(c for c in mac if c.isalnum()).lower()
    if len(digits) != 12:
        return mac.strip().lower()
    return ":".join(digits[i:i + 2] for i in range(0, 12, 2))


def parse_reply(datagram: bytes, generation: BridgeGeneration) -> Optional[DiscoveredBridge]:
    """Parse an 'ip,mac,name' discovery reply, or None if it isn't one"""
    try:
        text = datagram.decode("ascii").strip()
    except UnicodeDecodeError:
        return None
    parts = text.split(",")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    name = parts[2].strip() if len(parts) > 2 else ""
    return DiscoveredBridge(mac=normalise_mac(parts[1]), ip=parts[0].strip(), generation=generation, name=name)


def parse_bridge_type(bridge_type: str) -> list[BridgeGeneration]:
    """'all', 'legacy' or 'v6' (or 'ibox') -> generations to probe"""
    if bridge_type == "all":
        return [BridgeGeneration.LEGACY, BridgeGeneration.IBOX]
    return [BridgeGeneration.parse(bridge_type)]


class DiscoveryProtocol(asyncio.DatagramProtocol):
    def __init__(self, generation: BridgeGeneration, probe: bytes, logger: Optional[logging.Logger] = None):
        self.generation = generation
        self.probe = probe
        self.logger = logger or logging.getLogger(__name__)
        self.transport = None
        self.found: dict[str, DiscoveredBridge] = {}

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        if data == self.probe:
            # Our own broadcast echoed back
            return
        bridge = parse_reply(data, self.generation)
        if bridge is None:
            self.logger.debug(f"Ignoring discovery reply from {addr[0]}: {data!r}")
            return
        self.found.setdefault(bridge.mac, bridge)

    def error_received(self, exc):
        self.logger.error(f"Discovery protocol error: {exc}")

    def connection_lost(self, exc):
        if exc:
            self.logger.error(f"Discovery connection lost: {exc}")


async def _probe(generation: BridgeGeneration, timeout: float, logger: logging.Logger) -> list[DiscoveredBridge]:
    loop = asyncio.get_running_loop()
    probe = DiscoveryConst.PROBES[generation]
    try:
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: DiscoveryProtocol(generation, probe, logger),
            local_addr=("0.0.0.0", 0),
            allow_broadcast=True,
        )
    except OSError as e:
        raise MilightTransportError(f"Could not open discovery socket: {e}") from e
    try:
        transport.sendto(probe, (DiscoveryConst.BROADCAST_ADDRESS, DiscoveryConst.PORT))
        await asyncio.sleep(timeout)
    except OSError as e:
        raise MilightTransportError(f"Discovery broadcast failed: {e}") from e
    finally:
        transport.close()
    return list(protocol.found.values())


async def discover_bridges(bridge_type: str = "all",
                           timeout: float = DiscoveryConst.TIMEOUT,
                           logger: Optional[logging.Logger] = None) -> list[DiscoveredBridge]:
    """Broadcast discovery probes and collect the bridges that answer within timeout"""
    logger = logger or logging.getLogger(__name__)
    generations = parse_bridge_type(bridge_type)
    results = await asyncio.gather(*(_probe(g, timeout, logger) for g in generations))
    bridges: dict[str, DiscoveredBridge] = {}
    for found in results:
        for bridge in found:
            bridges.setdefault(bridge.mac, bridge)
    logger.debug(f"Discovery ({bridge_type}) found {len(bridges)} bridge(s): {', '.join(bridges) or 'none'}")
    return list(bridges.values())
