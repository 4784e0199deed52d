import base64
import colorsys
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..api import BridgeGeneration, Zone, ZoneType
from ..api.zone import FULL_COLOUR_TYPES, HUE_TYPES, SCENE_TYPES, TEMPERATURE_TYPES, WHITE_MODE_TYPES
from ..exceptions import InvalidArgumentError, MissingFieldError, NotFoundError
from .bridge import Bridge
from .capabilities import (
    Capability,
    Dim,
    LightHue,
    LightHueSaturation,
    LightTemperature,
    NightMode,
    OnOff,
    SceneSpeed,
    SetLightMode,
    ToggleScene,
    WhiteMode,
)
from .events import BridgeDestroyed, BridgeEvent, BridgeIPChanged, BridgeOffline, BridgeOnline, Subscription
from .manager import BridgeManager

"""
===================================================================================
MilightDevice binds one smart-home device (a zone on a bridge) to the library:
it finds and registers its bridge, turns capability changes into Zone calls and
follows the bridge's online/offline/IP events.
===================================================================================
"""


@dataclass
class DeviceIdentity:
    """Which zone on which bridge a device controls"""
    bridge_mac_address: str
    zone_number: int
    driver_type: ZoneType

    def __post_init__(self):
        self.zone_number = int(self.zone_number)
        try:
            self.driver_type = ZoneType.parse(self.driver_type)
        except ValueError as e:
            raise InvalidArgumentError(str(e)) from e

    @property
    def mac(self) -> str:
        return self.bridge_mac_address

    @property
    def key(self) -> str:
        return f"{self.bridge_mac_address}{self.zone_number}{self.driver_type.value}"

    @classmethod
    def from_mapping(cls, data: Mapping) -> "DeviceIdentity":
        """Build from snake_case or stored camelCase device data, including old 'bridgeID' records"""
        mac = data.get("bridge_mac_address") or data.get("bridgeMacAddress") or data.get("mac")
        if not mac and data.get("bridgeID"):
            bridge_id = data["bridgeID"]
            # Old records stored the MAC base64 encoded
            mac = bridge_id if ":" in bridge_id else base64.b64decode(bridge_id).decode("utf-8")
        zone_number = data.get("zone_number", data.get("zoneNumber"))
        driver_type = data.get("driver_type", data.get("driverType"))
        if not mac: raise MissingFieldError("bridge_mac_address", "device identity")
        if zone_number is None: raise MissingFieldError("zone_number", "device identity")
        if driver_type is None: raise MissingFieldError("driver_type", "device identity")
        return cls(bridge_mac_address=mac, zone_number=zone_number, driver_type=driver_type)


def swap_red_and_green(hue: float) -> float:
    """Hue of the same colour with its red and green channels swapped"""
    r, g, b = colorsys.hls_to_rgb(hue, 0.5, 1.0)
    swapped, _, _ = colorsys.rgb_to_hls(g, r, b)
    return swapped


class MilightDevice:
    def __init__(self,
                 manager: BridgeManager,
                 identity: DeviceIdentity | Mapping,
                 settings: Optional[dict[str, Any]] = None,
                 logger: Optional[logging.Logger] = None):
        self.manager = manager
        self.identity = identity if isinstance(identity, DeviceIdentity) else DeviceIdentity.from_mapping(identity)
        self.logger = logger or logging.getLogger(__name__)
        self.settings: dict[str, Any] = {"hue_calibration": 0.0, "invert_red_and_green": False} | dict(settings or {})
        self.bridge: Optional[Bridge] = None
        self.available: bool = False
        self.capability_values: dict[str, Any] = {}
        self.on_availability_change: Optional[Callable[["MilightDevice", bool], Awaitable[None]]] = None
        self._subscription: Optional[Subscription] = None

    def __repr__(self) -> str:
        return f"MilightDevice<{self.identity.key}>"

    @property
    def name(self) -> str:
        return f"Zone {self.identity.zone_number} {self.identity.driver_type.value}"

    def has_capability(self, capability: str) -> bool:
        driver_type = self.identity.driver_type
        match capability:
            case "onoff" | "dim":
                return True
            case "light_hue":
                return driver_type in HUE_TYPES
            case "light_saturation":
                # The iBox lamp takes hue only
                return driver_type in FULL_COLOUR_TYPES
            case "light_temperature":
                # Legacy RGBW devices expose the capability but ignore it
                return driver_type in TEMPERATURE_TYPES or driver_type == ZoneType.RGBW
            case "light_mode":
                return driver_type in WHITE_MODE_TYPES
            case "scene":
                return driver_type in SCENE_TYPES
        return False

    # ============================
    # Lifecycle
    # ============================

    async def init(self) -> Bridge:
        """Find the bridge, register with it and start following its events"""
        mac = self.identity.mac
        self.logger.debug(f"Initialising {self.name} on {mac}")
        try:
            bridge = await self.manager.find_bridge(mac)
        except NotFoundError:
            self.available = False
            self.logger.warning(f"{self.name}: bridge {mac} not found")
            raise

        # A bridge a device depends on is never temporary
        bridge = self.manager.register_bridge(bridge, temp=False)
        bridge.register_device(self.identity)
        if self._subscription:
            self._subscription.unsubscribe()
        self._subscription = bridge.subscribe(self._on_bridge_event)
        self.bridge = bridge
        self.settings.update({
            "bridge_ip_address": bridge.ip,
            "bridge_mac_address": bridge.mac,
            "bridge_zone_number": str(self.identity.zone_number),
            "bridge_driver_type": self.identity.driver_type.value,
        })
        self.available = bridge.online
        self.logger.info(f"{self.name} ready on {bridge}")
        return bridge

    def delete(self) -> None:
        """Deregister from the bridge; the bridge is destroyed if this was its last device"""
        self.logger.debug(f"Deleting {self.name}")
        if self._subscription:
            self._subscription.unsubscribe()
            self._subscription = None
        if self.bridge is not None:
            bridge, self.bridge = self.bridge, None
            bridge.deregister_device(self.identity)
        self.available = False

    def _on_bridge_event(self, event: BridgeEvent) -> Optional[Awaitable[None]]:
        match event:
            case BridgeOnline():
                return self._set_available(True)
            case BridgeOffline():
                return self._set_available(False)
            case BridgeIPChanged(ip=ip):
                self.settings["bridge_ip_address"] = ip
            case BridgeDestroyed():
                self.bridge = None
                self._subscription = None
                return self._set_available(False)
        return None

    def _set_available(self, available: bool) -> Optional[Awaitable[None]]:
        self.available = available
        self.logger.info(f"{self.name} is {'available' if available else 'unavailable'}")
        if callable(self.on_availability_change):
            return self.on_availability_change(self, available)
        return None

    # ============================
    # Zone
    # ============================

    @property
    def zone(self) -> Zone:
        if self.bridge is None:
            raise NotFoundError(f"{self.name} has no bridge, call init() first")
        identity = self.identity
        # Old records addressed the iBox lamp as RGBW zone 5
        if identity.driver_type == ZoneType.RGBW and identity.zone_number == 5:
            zone = self.bridge.get_zone(ZoneType.BRIDGE, 1)
        else:
            zone = self.bridge.get_zone(identity.driver_type, identity.zone_number)
        if zone is None:
            raise NotFoundError(f"{self.bridge} has no {identity.driver_type.value} zone {identity.zone_number}")
        return zone

    @staticmethod
    def calibrate_hue(hue: float, offset: float) -> float:
        """Add offset to hue, wrapping back into 0-1"""
        hue += offset
        if hue > 1: return hue - 1
        if hue < 0: return hue + 1
        return hue

    # ============================
    # Capabilities
    # ============================

    async def apply(self, capability: Capability) -> bool:
        zone = self.zone
        self.logger.debug(f"{self.name}: {capability}")
        match capability:
            case OnOff(on=on):
                self.capability_values["onoff"] = on
                return await (zone.turn_on() if on else zone.turn_off())
            case Dim(level=level):
                self.capability_values["dim"] = level
                self.capability_values["onoff"] = level >= 0.01
                return await zone.set_brightness(level)
            case LightHue(hue=hue):
                return await self._set_hue(zone, hue)
            case LightHueSaturation(hue=hue, saturation=saturation):
                hue = hue if hue is not None else self.capability_values.get("light_hue", zone.hue)
                if not self.has_capability("light_saturation"):
                    return await self._set_hue(zone, hue)
                saturation = saturation if saturation is not None else self.capability_values.get("light_saturation", 1.0)
                return await self._set_hue_and_saturation(zone, hue, saturation)
            case LightTemperature(temperature=temperature):
                return await self._set_temperature(zone, temperature)
            case SetLightMode(mode=mode):
                return await self._set_light_mode(zone, mode)
            case WhiteMode():
                return await zone.enable_white_mode(self._white_mode_temperature())
            case NightMode():
                return await zone.enable_night_mode()
            case ToggleScene(scene=scene):
                return await zone.toggle_scene(scene)
            case SceneSpeed(faster=True):
                return await zone.set_scene_speed_up()
            case SceneSpeed(faster=False):
                return await zone.set_scene_speed_down()
            case _:
                raise InvalidArgumentError(f"Unknown capability: {capability!r}")

    def _device_hue(self, hue: float) -> float:
        if self.settings.get("invert_red_and_green"):
            hue = swap_red_and_green(hue)
        return self.calibrate_hue(hue, float(self.settings.get("hue_calibration") or 0.0))

    def _colour_mode(self) -> None:
        self.capability_values["onoff"] = True
        if self.has_capability("light_mode"):
            self.capability_values["light_mode"] = "color"

    async def _set_hue(self, zone: Zone, hue: float) -> bool:
        self.capability_values["light_hue"] = hue
        self._colour_mode()
        return await zone.set_hue(self._device_hue(hue))

    async def _set_hue_and_saturation(self, zone: Zone, hue: float, saturation: float) -> bool:
        self.capability_values["light_hue"] = hue
        self.capability_values["light_saturation"] = saturation
        self._colour_mode()
        return await zone.set_hue_and_saturation(self._device_hue(hue), saturation)

    async def _set_temperature(self, zone: Zone, temperature: float) -> bool:
        if self.identity.driver_type == ZoneType.RGBW:
            # RGBW bulbs have no temperature control, park the slider in the middle
            self.capability_values["light_temperature"] = 0.5
            return True
        self.capability_values["onoff"] = True
        self.capability_values["light_temperature"] = temperature
        if self.has_capability("light_mode"):
            self.capability_values["light_mode"] = "temperature"
        return await zone.set_temperature(temperature)

    def _white_mode_temperature(self) -> Optional[float]:
        if self.identity.driver_type not in TEMPERATURE_TYPES:
            return None
        temperature = self.capability_values.get("light_temperature")
        return temperature if isinstance(temperature, (int, float)) else 1.0

    async def _set_light_mode(self, zone: Zone, mode: str | int) -> bool:
        self.capability_values["onoff"] = True
        self.capability_values["light_mode"] = mode
        match mode:
            case "temperature":
                return await zone.enable_white_mode(self._white_mode_temperature())
            case "color":
                return await self._set_hue(zone, self.capability_values.get("light_hue", zone.hue))
            case "disco":
                await self._set_light_mode(zone, "color")
                return await zone.toggle_scene()
            case "night":
                return await zone.enable_night_mode()
            case int() if not isinstance(mode, bool):
                return await zone.toggle_scene(mode)
        raise InvalidArgumentError(f"Unknown light mode: {mode!r}")


# ============================
# Pairing helpers
# ============================

def supports_driver_type(bridge: Bridge, driver_type: ZoneType | str) -> bool:
    """8-zone controllers and the iBox lamp only exist behind iBox bridges"""
    driver_type = ZoneType.parse(driver_type)
    if driver_type in (ZoneType.EIGHT_ZONE_CONTROLLER, ZoneType.BRIDGE):
        return bridge.generation == BridgeGeneration.IBOX
    return True


def bridge_entry(bridge: Bridge) -> dict[str, Any]:
    """A bridge as a pairing list entry"""
    label = "iBox Bridge" if bridge.generation == BridgeGeneration.IBOX else "Bridge"
    return {"name": f"{label} ({bridge.mac})", "data": {"bridge_mac_address": bridge.mac}}


def zone_entries(bridge: Bridge, driver_type: ZoneType | str) -> list[dict[str, Any]]:
    """The zones of one type on a bridge as pairing list entries, by ascending zone number"""
    driver_type = ZoneType.parse(driver_type)
    entries = []
    for zone in sorted(bridge.get_zones(driver_type), key=lambda z: (z.number, z.name)):
        entries.append({
            "name": "iBox Bridge" if zone.type == ZoneType.BRIDGE else f"{zone.type.value} Zone {zone.number}",
            "data": {
                "id": zone.id,
                "bridge_mac_address": bridge.mac,
                "zone_number": zone.number,
                "driver_type": zone.type.value,
            },
            "settings": {
                "bridge_zone_number": str(zone.number),
                "bridge_driver_type": zone.type.value,
                "bridge_mac_address": bridge.mac,
                "bridge_ip_address": bridge.ip,
            },
        })
    return entries
