import asyncio
import inspect
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, Callable, Optional

from ..api import BridgeGeneration, Const, MilightCommand, Zone, ZoneType, zone_catalog
from ..io import MilightClient
from ..exceptions import InvalidArgumentError, MilightTransportError, MissingFieldError
from .events import (
    BridgeDestroyed,
    BridgeEvent,
    BridgeEventHandler,
    BridgeIPChanged,
    BridgeOffline,
    BridgeOnline,
    Subscription,
)

"""
===================================================================================
A Bridge is one physical Milight bridge: its MAC, current IP, generation, the
zones behind it, the devices using it and its online/offline state.
===================================================================================

Terms:
Transport = The object that actually sends commands, built by transport_factory(ip, generation, logger=...)
Registered device = A key "{mac}{zone_number}{driver_type}" for each device using this bridge
Unavailable counter = Consecutive discovery sweeps this bridge did not answer
"""


class BridgeState(Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    DESTROYED = "destroyed"


TransportFactory = Callable[..., Any]


def identity_field(identity: Any, *names: str, what: str = "device identity") -> Any:
    """Read the first present field of names from a mapping or an object"""
    for name in names:
        if isinstance(identity, Mapping):
            value = identity.get(name)
        else:
            value = getattr(identity, name, None)
        if value is not None:
            return value
    raise MissingFieldError(names[0], what)


def device_key(identity: Any) -> str:
    """Registered-device key for a device identity"""
    mac = identity_field(identity, "bridge_mac_address", "mac")
    number = identity_field(identity, "zone_number")
    driver_type = identity_field(identity, "driver_type")
    return f"{mac}{number}{getattr(driver_type, 'value', driver_type)}"


class Bridge:
    def __init__(self,
                 mac: str,
                 ip: str,
                 generation: BridgeGeneration | str,
                 temp: bool = False,
                 transport_factory: Optional[TransportFactory] = None,
                 logger: Optional[logging.Logger] = None):
        if not mac: raise MissingFieldError("mac", "bridge")
        if not ip: raise MissingFieldError("ip", "bridge")
        try:
            generation = BridgeGeneration.parse(generation)
        except ValueError as e:
            raise InvalidArgumentError(str(e)) from e

        self.mac: str = mac
        self.ip: str = ip
        self.generation: BridgeGeneration = generation
        self.temp: bool = temp
        self.logger = logger or logging.getLogger(__name__)
        self.state: BridgeState = BridgeState.ONLINE
        self.unavailable_counter: int = 0
        self.registered_devices: set[str] = set()
        self.zones: dict[ZoneType, list[Zone]] = {}
        self._transport_factory: TransportFactory = transport_factory or MilightClient
        self._transport: Any = None
        self._handlers: list[BridgeEventHandler] = []
        self._tasks: set[asyncio.Task] = set()

        self.create_zones()
        self.logger.info(f"Created {self}")

    def __repr__(self) -> str:
        return f"Bridge<{self.generation.value} {self.mac} @ {self.ip}>"

    # ============================
    # State
    # ============================

    @property
    def online(self) -> bool:
        return self.state == BridgeState.ONLINE

    @property
    def destroyed(self) -> bool:
        return self.state == BridgeState.DESTROYED

    @property
    def available(self) -> bool:
        """Answered the most recent discovery sweep"""
        return self.unavailable_counter == 0 and not self.destroyed

    @property
    def transport(self) -> Any:
        return self._transport

    # ============================
    # Zones / transport
    # ============================

    def create_zones(self) -> None:
        """Build the transport and one Zone per catalog entry for this generation"""
        self._build_transport()
        for zone_type, number in zone_catalog(self.generation):
            zone = Zone(
                mac=self.mac,
                number=number,
                zone_type=zone_type,
                generation=self.generation,
                send=self.send_commands,
                logger=self.logger,
            )
            self.zones.setdefault(zone_type, []).append(zone)

    def get_zone(self, zone_type: ZoneType | str, number: int) -> Optional[Zone]:
        try:
            zone_type = ZoneType.parse(zone_type)
        except ValueError:
            return None
        for zone in self.zones.get(zone_type, []):
            if zone.number == int(number):
                return zone
        return None

    def get_zones(self, zone_type: Optional[ZoneType | str] = None) -> list[Zone] | dict[ZoneType, list[Zone]]:
        if zone_type is None:
            return {t: list(zones) for t, zones in self.zones.items()}
        return list(self.zones.get(ZoneType.parse(zone_type), []))

    async def send_commands(self, commands: list[MilightCommand]) -> bool:
        if self.destroyed or self._transport is None:
            raise MilightTransportError(f"{self} has been destroyed")
        return await self._transport.send_commands(commands)

    def update_ip_address(self, ip: str) -> None:
        """Move this bridge to a new IP, replacing its transport"""
        if not ip or ip == self.ip:
            return
        previous, self.ip = self.ip, ip
        self.logger.info(f"Bridge {self.mac} changed IP from {previous} to {ip}")
        self._emit(BridgeIPChanged(self, ip=ip, previous_ip=previous))
        self._build_transport()

    def _build_transport(self) -> None:
        # The old transport would keep sending to the previous IP
        self._close_transport()
        self.logger.debug(f"Creating transport for {self.ip} ({self.generation.value})")
        self._transport = self._transport_factory(self.ip, self.generation, logger=self.logger)

    def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Nothing can have been opened without a loop
            return
        self._track(loop.create_task(transport.close()))

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ============================
    # Devices
    # ============================

    def register_device(self, identity: Any) -> str:
        key = device_key(identity)
        self.registered_devices.add(key)
        self.logger.debug(f"Registered device {key} on {self.mac}")
        return key

    def deregister_device(self, identity: Any) -> None:
        """Forget a device. The bridge destroys itself once no devices are left."""
        key = device_key(identity)
        self.registered_devices.discard(key)
        self.logger.debug(f"Deregistered device {key} from {self.mac}")
        if not self.registered_devices:
            self.destroy()

    # ============================
    # Liveness
    # ============================

    def record_sighting(self) -> None:
        """The bridge answered a discovery sweep"""
        if self.unavailable_counter == Const.OFFLINE_MARKED:
            self.mark_online()
        self.unavailable_counter = 0

    def record_miss(self) -> None:
        """The bridge did not answer a discovery sweep"""
        if self.unavailable_counter == Const.OFFLINE_MARKED:
            return
        if self.unavailable_counter > Const.OFFLINE_THRESHOLD:
            self.mark_offline()
        else:
            self.unavailable_counter += 1

    def mark_offline(self) -> None:
        self.unavailable_counter = Const.OFFLINE_MARKED
        if self.state != BridgeState.ONLINE:
            return
        self.state = BridgeState.OFFLINE
        self.logger.info(f"Bridge {self.mac} is offline")
        self._emit(BridgeOffline(self))

    def mark_online(self) -> None:
        # Reset before emitting so handlers see an available bridge
        self.unavailable_counter = 0
        if self.state != BridgeState.OFFLINE:
            return
        self.state = BridgeState.ONLINE
        self.logger.info(f"Bridge {self.mac} is online")
        self._emit(BridgeOnline(self))

    # ============================
    # Events
    # ============================

    def subscribe(self, handler: BridgeEventHandler) -> Subscription:
        self._handlers.append(handler)
        return Subscription(self._handlers, handler)

    def _emit(self, event: BridgeEvent) -> None:
        for handler in list(self._handlers):
            try:
                result = handler(event)
            except Exception as e:
                self.logger.error(f"{type(event).__name__} handler {handler!r} failed: {e}")
                continue
            if inspect.isawaitable(result):
                self._track(asyncio.ensure_future(result))

    # ============================
    # Teardown
    # ============================

    def destroy(self) -> None:
        if self.destroyed:
            return
        self.state = BridgeState.DESTROYED
        self._emit(BridgeDestroyed(self))
        for zones in self.zones.values():
            for zone in zones:
                zone.cancel_pending()
        self._close_transport()
        self.zones.clear()
        self.registered_devices.clear()
        self._handlers.clear()
        self.logger.info(f"Destroyed {self}")
