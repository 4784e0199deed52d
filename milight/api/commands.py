"""
Milight command tables.

Each (bridge generation, zone type) pair has a table of primitive operations
(on, off, hue, brightness, ...) and the encoder that turns one primitive into
its wire payload. An operation missing from a table is not supported by that
kind of zone.

Legacy (v3/v4) commands are three bytes: [opcode, value, 0x55]. Zone
addressing lives in the opcode of on/off/white/night/max commands, the valued
commands act on whichever zone was last addressed.

iBox (v6) commands are ten bytes: [0x31, 0x00, 0x00, lamp, cmd, v1, v2, v3, v4, zone].
The transport wraps them in the v6 frame (session id, sequence, checksum).
"""

from dataclasses import dataclass
from typing import Callable, Optional

from .types import BridgeGeneration, ZoneType
from ..exceptions import InvalidArgumentError, UnsupportedOperationError
from ..utils import round_half_up

Encoder = Callable[[int, Optional[int]], bytes]


@dataclass(frozen=True)
class MilightCommand:
    """A single primitive command, ready to be handed to the transport"""
    name: str
    zone: int = 0
    value: Optional[int] = None
    payload: bytes = b""

    def __repr__(self) -> str:
        if self.value is None:
            return f"{self.name}({self.zone})"
        return f"{self.name}({self.zone}, {self.value})"


def _byte(value: Optional[int]) -> int:
    if value is None:
        return 0x00
    return max(0x00, min(0xFF, int(value)))


# ============================
# Legacy encoders
# ============================

LEGACY_SUFFIX = 0x55
LEGACY_MAX_ZONE = 4


def _legacy_zoned(codes: tuple[int, int, int, int, int]) -> Encoder:
    # codes indexed by zone, 0 = all zones
    return lambda zone, value: bytes([codes[zone], 0x00, LEGACY_SUFFIX])


def _legacy_fixed(code: int) -> Encoder:
    return lambda zone, value: bytes([code, 0x00, LEGACY_SUFFIX])


def _legacy_valued(code: int, convert: Callable[[int], int] = _byte) -> Encoder:
    return lambda zone, value: bytes([code, convert(value), LEGACY_SUFFIX])


def _legacy_brightness(percent: Optional[int]) -> int:
    # Legacy RGBW brightness runs from 2 (dimmest) to 27 (brightest)
    percent = max(0, min(100, percent or 0))
    return 2 + round_half_up(percent / 100 * 25)


LEGACY_COMMANDS: dict[ZoneType, dict[str, Encoder]] = {
    ZoneType.RGB: {
        "on": _legacy_fixed(0x22),
        "off": _legacy_fixed(0x21),
        "hue": _legacy_valued(0x20),
        "bright_up": _legacy_fixed(0x23),
        "bright_down": _legacy_fixed(0x24),
        "effect_speed_up": _legacy_fixed(0x25),
        "effect_speed_down": _legacy_fixed(0x26),
        "effect_mode_next": _legacy_fixed(0x27),
    },
    ZoneType.RGBW: {
        "on": _legacy_zoned((0x42, 0x45, 0x47, 0x49, 0x4B)),
        "off": _legacy_zoned((0x41, 0x46, 0x48, 0x4A, 0x4C)),
        "white_mode": _legacy_zoned((0xC2, 0xC5, 0xC7, 0xC9, 0xCB)),
        "night_mode": _legacy_zoned((0xC1, 0xC6, 0xC8, 0xCA, 0xCC)),
        "hue": _legacy_valued(0x40),
        "brightness": _legacy_valued(0x4E, _legacy_brightness),
        "effect_mode_next": _legacy_fixed(0x4D),
        "effect_speed_up": _legacy_fixed(0x44),
        "effect_speed_down": _legacy_fixed(0x43),
    },
    ZoneType.WHITE: {
        "on": _legacy_zoned((0x35, 0x38, 0x3D, 0x37, 0x32)),
        "off": _legacy_zoned((0x39, 0x3B, 0x33, 0x3A, 0x36)),
        "max_bright": _legacy_zoned((0xB5, 0xB8, 0xBD, 0xB7, 0xB2)),
        "night_mode": _legacy_zoned((0xB9, 0xBB, 0xB3, 0xBA, 0xB6)),
        "bright_up": _legacy_fixed(0x3C),
        "bright_down": _legacy_fixed(0x34),
        "warmer": _legacy_fixed(0x3E),
        "cooler": _legacy_fixed(0x3F),
    },
}


# ============================
# iBox (v6) encoders
# ============================

V6_PREFIX = (0x31, 0x00, 0x00)
V6_MAX_ZONE = 8

# Lamp type byte per zone type
V6_LAMP: dict[ZoneType, int] = {
    ZoneType.BRIDGE: 0x00,
    ZoneType.WHITE: 0x01,
    ZoneType.RGB: 0x05,
    ZoneType.RGBW: 0x07,
    ZoneType.RGBWW: 0x08,
    ZoneType.EIGHT_ZONE_CONTROLLER: 0x0A,
}


def _v6_fixed(lamp: int, cmd: int, arg: int) -> Encoder:
    return lambda zone, value: bytes([*V6_PREFIX, lamp, cmd, arg, 0x00, 0x00, 0x00, zone])


def _v6_valued(lamp: int, cmd: int) -> Encoder:
    return lambda zone, value: bytes([*V6_PREFIX, lamp, cmd, _byte(value), 0x00, 0x00, 0x00, zone])


def _v6_hue(lamp: int) -> Encoder:
    def encode(zone: int, value: Optional[int]) -> bytes:
        v = _byte(value)
        return bytes([*V6_PREFIX, lamp, 0x01, v, v, v, v, zone])
    return encode


def _v6_full_colour(lamp: int) -> dict[str, Encoder]:
    # RGBWW bulbs and the 8-zone controller share one command set
    return {
        "on": _v6_fixed(lamp, 0x04, 0x01),
        "off": _v6_fixed(lamp, 0x04, 0x02),
        "effect_speed_up": _v6_fixed(lamp, 0x04, 0x03),
        "effect_speed_down": _v6_fixed(lamp, 0x04, 0x04),
        "night_mode": _v6_fixed(lamp, 0x04, 0x05),
        "effect_mode_next": _v6_fixed(lamp, 0x04, 0x06),
        "white_mode": _v6_fixed(lamp, 0x05, 0x64),
        "hue": _v6_hue(lamp),
        "saturation": _v6_valued(lamp, 0x02),
        "brightness": _v6_valued(lamp, 0x03),
        "white_temperature": _v6_valued(lamp, 0x05),
        "effect_mode": _v6_valued(lamp, 0x06),
    }


IBOX_COMMANDS: dict[ZoneType, dict[str, Encoder]] = {
    ZoneType.BRIDGE: {
        "effect_speed_down": _v6_fixed(0x00, 0x03, 0x01),
        "effect_speed_up": _v6_fixed(0x00, 0x03, 0x02),
        "on": _v6_fixed(0x00, 0x03, 0x03),
        "off": _v6_fixed(0x00, 0x03, 0x04),
        "white_mode": _v6_fixed(0x00, 0x03, 0x05),
        "effect_mode_next": _v6_fixed(0x00, 0x03, 0x06),
        "hue": _v6_hue(0x00),
        "brightness": _v6_valued(0x00, 0x02),
        "effect_mode": _v6_valued(0x00, 0x04),
    },
    ZoneType.WHITE: {
        "bright_up": _v6_fixed(0x01, 0x01, 0x01),
        "bright_down": _v6_fixed(0x01, 0x01, 0x02),
        "cooler": _v6_fixed(0x01, 0x01, 0x03),
        "warmer": _v6_fixed(0x01, 0x01, 0x04),
        "max_bright": _v6_fixed(0x01, 0x01, 0x05),
        "night_mode": _v6_fixed(0x01, 0x01, 0x06),
        "on": _v6_fixed(0x01, 0x01, 0x07),
        "off": _v6_fixed(0x01, 0x01, 0x08),
    },
    ZoneType.RGB: {
        "on": _v6_fixed(0x05, 0x03, 0x01),
        "off": _v6_fixed(0x05, 0x03, 0x02),
        "bright_up": _v6_fixed(0x05, 0x03, 0x03),
        "bright_down": _v6_fixed(0x05, 0x03, 0x04),
        "effect_speed_up": _v6_fixed(0x05, 0x03, 0x05),
        "effect_speed_down": _v6_fixed(0x05, 0x03, 0x06),
        "effect_mode_next": _v6_fixed(0x05, 0x03, 0x07),
        "hue": _v6_hue(0x05),
    },
    ZoneType.RGBW: {
        "on": _v6_fixed(0x07, 0x03, 0x01),
        "off": _v6_fixed(0x07, 0x03, 0x02),
        "effect_speed_up": _v6_fixed(0x07, 0x03, 0x03),
        "effect_speed_down": _v6_fixed(0x07, 0x03, 0x04),
        "white_mode": _v6_fixed(0x07, 0x03, 0x05),
        "night_mode": _v6_fixed(0x07, 0x03, 0x06),
        "effect_mode_next": _v6_fixed(0x07, 0x03, 0x07),
        "hue": _v6_hue(0x07),
        "brightness": _v6_valued(0x07, 0x02),
        "effect_mode": _v6_valued(0x07, 0x04),
    },
    ZoneType.RGBWW: _v6_full_colour(0x08),
    ZoneType.EIGHT_ZONE_CONTROLLER: _v6_full_colour(0x0A),
}


class CommandTable:
    """The primitive commands available to one zone type on one bridge generation"""

    def __init__(self, generation: BridgeGeneration, zone_type: ZoneType, encoders: dict[str, Encoder]):
        self.generation = generation
        self.zone_type = zone_type
        self._encoders = encoders
        self._max_zone = LEGACY_MAX_ZONE if generation == BridgeGeneration.LEGACY else V6_MAX_ZONE

    def __repr__(self) -> str:
        return f"CommandTable<{self.generation.value} {self.zone_type.value}>"

    @property
    def operations(self) -> frozenset[str]:
        return frozenset(self._encoders)

    def supports(self, name: str) -> bool:
        return name in self._encoders

    def build(self, name: str, zone: int = 0, value: Optional[int] = None) -> MilightCommand:
        encoder = self._encoders.get(name)
        if encoder is None:
            raise UnsupportedOperationError(self.zone_type, f"send primitive '{name}'", f"not available on {self.generation.value} bridges")
        if not 0 <= zone <= self._max_zone:
            raise InvalidArgumentError(f"Zone number must be between 0 and {self._max_zone}, got {zone}")
        if value is not None:
            value = int(value)
        return MilightCommand(name=name, zone=zone, value=value, payload=encoder(zone, value))

    # Primitives

    def on(self, zone: int = 0) -> MilightCommand:
        return self.build("on", zone)

    def off(self, zone: int = 0) -> MilightCommand:
        return self.build("off", zone)

    def hue(self, zone: int, value: int) -> MilightCommand:
        return self.build("hue", zone, value)

    def brightness(self, zone: int, value: int) -> MilightCommand:
        return self.build("brightness", zone, value)

    def saturation(self, zone: int, value: int) -> MilightCommand:
        return self.build("saturation", zone, value)

    def white_mode(self, zone: int = 0) -> MilightCommand:
        return self.build("white_mode", zone)

    def white_temperature(self, zone: int, value: int) -> MilightCommand:
        return self.build("white_temperature", zone, value)

    def night_mode(self, zone: int = 0) -> MilightCommand:
        return self.build("night_mode", zone)

    def effect_mode(self, zone: int, scene: int) -> MilightCommand:
        return self.build("effect_mode", zone, scene)

    def effect_mode_next(self, zone: int = 0) -> MilightCommand:
        return self.build("effect_mode_next", zone)

    def effect_speed_up(self, zone: int = 0) -> MilightCommand:
        return self.build("effect_speed_up", zone)

    def effect_speed_down(self, zone: int = 0) -> MilightCommand:
        return self.build("effect_speed_down", zone)

    def bright_up(self, zone: int = 0) -> MilightCommand:
        return self.build("bright_up", zone)

    def bright_down(self, zone: int = 0) -> MilightCommand:
        return self.build("bright_down", zone)

    def max_bright(self, zone: int = 0) -> MilightCommand:
        return self.build("max_bright", zone)

    def warmer(self, zone: int = 0) -> MilightCommand:
        return self.build("warmer", zone)

    def cooler(self, zone: int = 0) -> MilightCommand:
        return self.build("cooler", zone)


COMMANDS: dict[BridgeGeneration, dict[ZoneType, dict[str, Encoder]]] = {
    BridgeGeneration.LEGACY: LEGACY_COMMANDS,
    BridgeGeneration.IBOX: IBOX_COMMANDS,
}


def get_command_table(generation: BridgeGeneration, zone_type: ZoneType) -> CommandTable:
    """Return the command table for a zone type, or an empty one if the generation has no such zones"""
    return CommandTable(generation, zone_type, COMMANDS[generation].get(zone_type, {}))
