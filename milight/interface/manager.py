import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Optional

from ..api import BridgeGeneration, Const
from ..io import DiscoveredBridge, DiscoveryConst, MilightClient, discover_bridges, normalise_mac
from ..io.discovery import parse_bridge_type
from ..exceptions import InvalidArgumentError, MilightError, MilightTransportError, MissingFieldError, NotFoundError
from .bridge import Bridge, TransportFactory, identity_field
from .events import BridgeDestroyed, BridgeEvent, Subscription

"""
===================================================================================
The BridgeManager owns every Bridge in use. It discovers bridges, keeps exactly
one Bridge per MAC address and periodically re-discovers to track bridges that
go offline or move to a new IP.
===================================================================================

Terms:
Discover = An async callable discover(bridge_type=..., timeout=..., logger=...) -> list[DiscoveredBridge]
Sweep = One discovery whose results update the liveness of every registered bridge
Temp bridge = Registered only to be listed during pairing; promoted when a device starts using it
"""

Discover = Callable[..., Awaitable[list[DiscoveredBridge]]]


class BridgeManager:
    def __init__(self,
                 discover: Optional[Discover] = None,
                 transport_factory: Optional[TransportFactory] = None,
                 poll_interval: float = Const.BRIDGE_POLL_INTERVAL,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.poll_interval = poll_interval
        self.bridges: list[Bridge] = []
        self._discover: Discover = discover or discover_bridges
        self._transport_factory: TransportFactory = transport_factory or MilightClient
        self._discovery_tasks: dict[str, asyncio.Task] = {}
        self._poll_task: Optional[asyncio.Task] = None
        self._sweep_lock = asyncio.Lock()
        self._subscriptions: dict[str, Subscription] = {}
        self.logger.debug("Created BridgeManager")

    # ============================
    # Setup / Start / Stop
    # ============================

    def start(self) -> None:
        """Start polling registered bridges for liveness and IP changes"""
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def destroy(self) -> None:
        """Stop polling and destroy every registered bridge"""
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        for bridge in self.get_registered_bridges():
            bridge.destroy()
        self.logger.info("Destroyed BridgeManager")

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
        self.destroy()

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    # ============================
    # Discovery
    # ============================

    async def _run_discovery(self, bridge_type: str, timeout: float) -> list[DiscoveredBridge]:
        # Join a running scan only when it covers the requested bridge type
        task = None
        for scanning in (bridge_type, "all"):
            running = self._discovery_tasks.get(scanning)
            if running is not None and not running.done():
                task = running
                break
        if task is None:
            task = asyncio.create_task(
                self._discover(bridge_type=bridge_type, timeout=timeout, logger=self.logger)
            )
            self._discovery_tasks[bridge_type] = task
        try:
            found = list(await asyncio.shield(task))
        except MilightError as e:
            self.logger.error(f"Bridge discovery failed: {e}")
            raise
        except OSError as e:
            self.logger.error(f"Bridge discovery failed: {e}")
            raise MilightTransportError(f"Bridge discovery failed: {e}") from e
        generations = parse_bridge_type(bridge_type)
        return [candidate for candidate in found if candidate.generation in generations]

    async def discover_bridges(self,
                               bridge_type: str = "all",
                               timeout: float = DiscoveryConst.TIMEOUT,
                               temp: bool = False,
                               retry: bool = True) -> list[Bridge]:
        """Discover and register bridges, trying once more if nothing answers"""
        self.logger.debug(f"Starting bridge discovery ({bridge_type})")
        found = await self._run_discovery(bridge_type, timeout)
        self.logger.debug(f"Discovery found {len(found)} bridge(s)")

        async with self._sweep_lock:
            bridges = []
            for candidate in found:
                bridge = self.register_bridge(candidate, temp=temp)
                bridge.record_sighting()
                bridges.append(bridge)

        if bridges or not retry:
            return bridges
        return await self.discover_bridges(bridge_type, timeout, temp=temp, retry=False)

    async def find_bridge(self, mac: str) -> Bridge:
        """Return an available registered bridge, discovering if needed"""
        bridge = self.get_bridge({"mac": mac, "available": True})
        if bridge is not None:
            return bridge
        self.logger.debug(f"Bridge {mac} not available in registry, starting discovery")
        await self.discover_bridges()
        bridge = self.get_bridge({"mac": mac, "available": True})
        if bridge is None:
            raise NotFoundError(f"Bridge {mac} not found after discovery")
        self.logger.debug(f"Found bridge {mac} after discovery")
        return bridge

    # ============================
    # Polling
    # ============================

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll_bridges()
            except MilightError as e:
                self.logger.error(f"Bridge poll failed: {e}")

    async def poll_bridges(self) -> None:
        """Run one liveness sweep over the registered bridges"""
        if not self.bridges:
            return
        async with self._sweep_lock:
            found = await self._run_discovery("all", DiscoveryConst.TIMEOUT)
            self.logger.debug(f"Poll sweep found {len(found)} bridge(s)")
            self.apply_sweep(found)

    def apply_sweep(self,
                    found: list[DiscoveredBridge],
                    generations: Optional[list[BridgeGeneration]] = None) -> None:
        """Record a sighting or a miss for each bridge of a scanned generation"""
        if generations is None:
            generations = parse_bridge_type("all")
        seen = {normalise_mac(candidate.mac): candidate for candidate in found}
        for bridge in self.get_registered_bridges():
            if bridge.generation not in generations:
                continue
            candidate = seen.get(normalise_mac(bridge.mac))
            if candidate is None:
                bridge.record_miss()
                continue
            if candidate.ip != bridge.ip:
                self.logger.info(f"Poll found bridge {bridge.mac} on new IP {candidate.ip} (was {bridge.ip})")
                bridge.update_ip_address(candidate.ip)
            bridge.record_sighting()

    # ============================
    # Registry
    # ============================

    def get_bridge(self, query: Any) -> Optional[Bridge]:
        """Look up a bridge by MAC, or by {"mac": ..., "available": bool}"""
        available = False
        if isinstance(query, str):
            mac = query
        elif isinstance(query, Mapping):
            mac = query.get("mac")
            available = bool(query.get("available", False))
        else:
            mac = getattr(query, "mac", None)
        if not mac:
            raise MissingFieldError("mac", "bridge query")
        mac = normalise_mac(mac)
        for bridge in self.bridges:
            if normalise_mac(bridge.mac) == mac and (not available or bridge.available):
                return bridge
        return None

    def has_bridge(self, query: Any) -> bool:
        return self.get_bridge(query) is not None

    def get_registered_bridges(self) -> list[Bridge]:
        return list(self.bridges)

    def register_bridge(self, candidate: Any, temp: bool = False) -> Bridge:
        """Add a bridge, or update the registered bridge with the same MAC"""
        mac, ip, generation = self._candidate_fields(candidate)
        existing = self.get_bridge(mac)
        if existing is not None:
            if existing.ip != ip:
                self.logger.info(f"Bridge {mac} was registered on {existing.ip}, updating to {ip}")
                self.update_bridge(existing, ip)
            # Only ever promote a temp bridge, never demote
            if existing.temp and not temp:
                existing.temp = False
            return existing

        bridge = Bridge(mac, ip, generation, temp=temp, transport_factory=self._transport_factory, logger=self.logger)
        self._subscriptions[bridge.mac] = bridge.subscribe(self._on_bridge_event)
        self.bridges.append(bridge)
        self.logger.info(f"Registered {bridge}{' (temp)' if temp else ''}")
        return bridge

    def update_bridge(self, target: Any, ip: str) -> Bridge:
        bridge = self.get_bridge(target)
        if bridge is None:
            raise NotFoundError(f"Can not update unknown bridge {getattr(target, 'mac', target)}")
        bridge.update_ip_address(ip)
        return bridge

    def deregister_bridge(self, bridge: Bridge) -> Optional[Bridge]:
        registered = self.get_bridge(bridge.mac)
        if registered is None or registered is not bridge:
            return None
        self.bridges.remove(registered)
        subscription = self._subscriptions.pop(registered.mac, None)
        if subscription:
            subscription.unsubscribe()
        self.logger.info(f"Deregistered {registered} ({len(self.bridges)} remaining)")
        return registered

    def deregister_temp_bridges(self) -> None:
        """Destroy bridges that were only registered for pairing"""
        for bridge in self.get_registered_bridges():
            if bridge.temp:
                bridge.destroy()

    def _on_bridge_event(self, event: BridgeEvent) -> None:
        match event:
            case BridgeDestroyed(bridge=bridge):
                self.deregister_bridge(bridge)

    @staticmethod
    def _candidate_fields(candidate: Any) -> tuple[str, str, BridgeGeneration]:
        mac = identity_field(candidate, "mac", what="bridge")
        ip = identity_field(candidate, "ip", what="bridge")
        try:
            generation = identity_field(candidate, "generation", "type", what="bridge")
        except MissingFieldError:
            # Replies without a type come from the legacy discovery probe
            identity_field(candidate, "name", what="bridge")
            generation = BridgeGeneration.LEGACY
        try:
            return mac, ip, BridgeGeneration.parse(generation)
        except ValueError as e:
            raise InvalidArgumentError(str(e)) from e
