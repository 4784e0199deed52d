"""
Milight zones.

A Zone is one addressable group of bulbs behind a bridge. It knows which
commands its zone type accepts, remembers the last brightness/hue/temperature
it set (the relative-only bulbs need that to compute step pulses) and hands
finished command batches to the send function injected by its bridge.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .commands import MilightCommand, get_command_table
from .types import BridgeGeneration, Const, LightMode, ZoneType
from ..exceptions import InvalidArgumentError, UnsupportedOperationError
from ..utils import map_range, round_half_up

Sender = Callable[[list[MilightCommand]], Awaitable[bool]]

# Zone types that accept each operation
HUE_TYPES = frozenset({ZoneType.RGB, ZoneType.RGBW, ZoneType.RGBWW, ZoneType.BRIDGE, ZoneType.EIGHT_ZONE_CONTROLLER})
HUE_SATURATION_TYPES = frozenset({ZoneType.RGBWW, ZoneType.BRIDGE, ZoneType.EIGHT_ZONE_CONTROLLER})
TEMPERATURE_TYPES = frozenset({ZoneType.WHITE, ZoneType.RGBWW, ZoneType.EIGHT_ZONE_CONTROLLER})
WHITE_MODE_TYPES = frozenset({ZoneType.RGBW, ZoneType.RGBWW, ZoneType.BRIDGE, ZoneType.EIGHT_ZONE_CONTROLLER})
NIGHT_MODE_TYPES = frozenset({ZoneType.RGBW, ZoneType.WHITE, ZoneType.RGBWW, ZoneType.BRIDGE, ZoneType.EIGHT_ZONE_CONTROLLER})
SCENE_TYPES = frozenset({ZoneType.RGBW, ZoneType.RGBWW, ZoneType.EIGHT_ZONE_CONTROLLER})

# Zone types that take an absolute brightness value
ABSOLUTE_BRIGHTNESS_TYPES = frozenset({ZoneType.RGBW, ZoneType.RGBWW, ZoneType.BRIDGE, ZoneType.EIGHT_ZONE_CONTROLLER})
# Zone types whose hue wheel starts at 0 and need the zone switched on first
FULL_HUE_TYPES = frozenset({ZoneType.RGBW, ZoneType.RGBWW, ZoneType.EIGHT_ZONE_CONTROLLER})
FULL_COLOUR_TYPES = frozenset({ZoneType.RGBWW, ZoneType.EIGHT_ZONE_CONTROLLER})


# Zones present behind each bridge generation, in creation order
LEGACY_ZONES: tuple[tuple[ZoneType, range], ...] = (
    (ZoneType.RGB, range(1, 2)),
    (ZoneType.RGBW, range(1, 5)),
    (ZoneType.WHITE, range(1, 5)),
)
IBOX_ZONES: tuple[tuple[ZoneType, range], ...] = LEGACY_ZONES + (
    (ZoneType.RGBWW, range(1, 5)),
    (ZoneType.BRIDGE, range(1, 2)),
    (ZoneType.EIGHT_ZONE_CONTROLLER, range(1, 9)),
)


def zone_catalog(generation: BridgeGeneration) -> list[tuple[ZoneType, int]]:
    """Every (zone type, zone number) pair a bridge of this generation exposes"""
    catalog = IBOX_ZONES if generation == BridgeGeneration.IBOX else LEGACY_ZONES
    return [(zone_type, number) for zone_type, numbers in catalog for number in numbers]


def _check_unit(name: str, value: Optional[float]) -> float:
    if value is None:
        raise InvalidArgumentError(f"Missing {name} parameter")
    if not 0 <= value <= 1:
        raise InvalidArgumentError(f"{name} must be between 0 and 1, got {value}")
    return float(value)


class Zone:
    """One zone (group of bulbs of a single type) behind a Milight bridge"""

    def __init__(self,
                 mac: str,
                 number: int,
                 zone_type: ZoneType,
                 generation: BridgeGeneration,
                 send: Sender,
                 logger: Optional[logging.Logger] = None):
        self.id: str = f"{mac}{number}{zone_type.value}"
        self.number: int = number
        self.type: ZoneType = zone_type
        self.bridge_generation: BridgeGeneration = generation
        self.logger = logger or logging.getLogger(__name__)
        self.commands = get_command_table(generation, zone_type)
        self._send = send
        self._pending: set[asyncio.Task] = set()

        self._brightness: float = 1.0
        self._temperature: float = 1.0
        self._hue: float = 1.0
        self._saturation: Optional[float] = None
        self._mode: LightMode = LightMode.COLOR

        self.logger.debug(f"Created {self.name}")

    def __repr__(self) -> str:
        return f"Zone<{self.id}>"

    # ============================
    # State
    # ============================

    @property
    def name(self) -> str:
        return f"Zone {self.number} {self.type.value}"

    @property
    def brightness(self) -> float:
        return self._brightness

    @property
    def hue(self) -> float:
        return self._hue

    @property
    def saturation(self) -> Optional[float]:
        return self._saturation

    @property
    def temperature(self) -> float:
        return self._temperature

    @property
    def mode(self) -> LightMode:
        return self._mode

    @property
    def is_ibox(self) -> bool:
        return self.bridge_generation == BridgeGeneration.IBOX

    def _require(self, allowed: frozenset[ZoneType], operation: str) -> None:
        if self.type not in allowed:
            raise UnsupportedOperationError(self.type, operation)

    # ============================
    # Operations
    # ============================

    async def turn_on(self) -> bool:
        """Turn on all lights in this zone"""
        return await self._dispatch("turn_on", [self.commands.on(self.number)], retry=True)

    async def turn_off(self) -> bool:
        """Turn off all lights in this zone"""
        return await self._dispatch("turn_off", [self.commands.off(self.number)], retry=True)

    async def set_brightness(self, level: float) -> bool:
        """Set brightness, 0-1. Relative-only bulbs are stepped from the last brightness set."""
        level = _check_unit("brightness", level)
        commands = self.brightness_commands(level)
        self._brightness = level
        return await self._dispatch("set_brightness", commands, retry=True)

    async def set_hue(self, hue: float) -> bool:
        """Set hue, 0-1, and switch to colour mode"""
        self._require(HUE_TYPES, "set hue")
        hue = _check_unit("hue", hue)
        commands = self.hue_commands(hue)
        self._hue = hue
        self._mode = LightMode.COLOR
        return await self._dispatch("set_hue", commands, retry=True)

    async def set_hue_and_saturation(self, hue: float, saturation: float) -> bool:
        """Set hue and saturation, both 0-1, in a single batch"""
        self._require(HUE_SATURATION_TYPES, "set hue and saturation")
        hue = _check_unit("hue", hue)
        saturation = _check_unit("saturation", saturation)
        commands = self.hue_commands(hue) + self.saturation_commands(saturation)
        self._hue = hue
        self._saturation = saturation
        self._mode = LightMode.COLOR
        return await self._dispatch("set_hue_and_saturation", commands, retry=True)

    async def set_temperature(self, temperature: float) -> bool:
        """Set white temperature, 0 (cool) - 1 (warm)"""
        self._require(TEMPERATURE_TYPES, "set temperature")
        temperature = _check_unit("temperature", temperature)
        commands = self.temperature_commands(temperature)
        self._temperature = temperature
        self._mode = LightMode.TEMPERATURE
        return await self._dispatch("set_temperature", commands)

    async def enable_white_mode(self, temperature: Optional[float] = None) -> bool:
        self._require(WHITE_MODE_TYPES, "enable white mode")
        if temperature is not None:
            temperature = _check_unit("temperature", temperature)
        commands = self.white_mode_commands(temperature)
        self._mode = LightMode.TEMPERATURE
        return await self._dispatch("enable_white_mode", commands, retry=True)

    async def enable_night_mode(self) -> bool:
        self._require(NIGHT_MODE_TYPES, "enable night mode")
        commands = self.night_mode_commands()
        self._mode = LightMode.TEMPERATURE
        return await self._dispatch("enable_night_mode", commands, retry=True)

    async def toggle_scene(self, scene_id: Optional[int] = None) -> bool:
        """Select scene 1-9 (iBox only), or advance to the next scene"""
        self._require(SCENE_TYPES, "toggle scene")
        if scene_id is not None and not Const.MIN_SCENE <= scene_id <= Const.MAX_SCENE:
            raise InvalidArgumentError(f"Scene must be between {Const.MIN_SCENE} and {Const.MAX_SCENE}, got {scene_id}")
        return await self._dispatch("toggle_scene", self.scene_commands(scene_id))

    async def set_scene_speed_up(self) -> bool:
        self._require(SCENE_TYPES, "set scene speed up")
        return await self._dispatch("set_scene_speed_up", [self.commands.effect_speed_up(self.number)])

    async def set_scene_speed_down(self) -> bool:
        self._require(SCENE_TYPES, "set scene speed down")
        return await self._dispatch("set_scene_speed_down", [self.commands.effect_speed_down(self.number)])

    # ============================
    # Command builders
    # ============================

    def brightness_commands(self, level: float) -> list[MilightCommand]:
        """Commands that take this zone from its current brightness to level"""
        n = self.number
        if self.type in ABSOLUTE_BRIGHTNESS_TYPES:
            if level < Const.OFF_BELOW:
                return [self.commands.off(n)]
            return [self.commands.on(n), self.commands.brightness(n, round_half_up(level * 100))]

        diff = round_half_up((level - self._brightness) * Const.STEPS_PER_UNIT)

        if self.type == ZoneType.RGB:
            # Legacy RGB bulbs need to be addressed before stepping
            prefix = [] if self.is_ibox else [self.commands.on(n)]
            if level > Const.MAX_ABOVE:
                return prefix + [self.commands.bright_up(n) for _ in range(Const.RGB_MAX_STEPS)]
            if level < Const.OFF_BELOW:
                return [self.commands.off(n)]
            if diff > 0:
                return prefix + [self.commands.bright_up(n) for _ in range(diff)]
            if diff < 0:
                return prefix + [self.commands.bright_down(n) for _ in range(-diff)]
            return []

        # WHITE
        if level < Const.OFF_BELOW:
            return [self.commands.off(n)]
        if level > Const.MAX_ABOVE:
            return [self.commands.on(n), self.commands.max_bright(n)]
        if diff > 0:
            return [self.commands.on(n)] + [self.commands.bright_up(n) for _ in range(diff)]
        if diff < 0:
            return [self.commands.on(n)] + [self.commands.bright_down(n) for _ in range(-diff)]
        return []

    def calibrated_hue(self, hue: float) -> float:
        """Add this zone type's calibration offset to hue"""
        match self.type:
            case ZoneType.BRIDGE:
                hue += Const.HUE_OFFSET_BRIDGE
            case ZoneType.RGBWW | ZoneType.EIGHT_ZONE_CONTROLLER:
                hue += Const.HUE_OFFSET_FULL_COLOR
            case ZoneType.RGBW:
                hue += Const.HUE_OFFSET_RGBW_IBOX if self.is_ibox else Const.HUE_OFFSET_RGBW_LEGACY
        if hue > 1:
            hue -= 1
        if hue == 0:
            hue = Const.HUE_ZERO_NUDGE
        return hue

    def hue_commands(self, hue: float) -> list[MilightCommand]:
        n = self.number
        hue = self.calibrated_hue(hue)
        if self.type in FULL_HUE_TYPES:
            return [self.commands.on(n), self.commands.hue(n, round_half_up(map_range(0, 1, 0, 255, hue)))]
        return [self.commands.hue(n, round_half_up(map_range(0, 1, 1, 256, hue)))]

    def saturation_commands(self, saturation: float) -> list[MilightCommand]:
        n = self.number
        return [self.commands.on(n), self.commands.saturation(n, round_half_up(map_range(0, 1, 100, 0, saturation)))]

    def temperature_commands(self, temperature: float) -> list[MilightCommand]:
        n = self.number
        if self.type == ZoneType.WHITE:
            diff = round_half_up((temperature - self._temperature) * Const.STEPS_PER_UNIT)
            if diff > 0:
                return [self.commands.on(n)] + [self.commands.warmer(n) for _ in range(diff)]
            return [self.commands.on(n)] + [self.commands.cooler(n) for _ in range(-diff)]
        return [self.commands.on(n), self.commands.white_temperature(n, round_half_up(100 - temperature * 100))]

    def white_mode_commands(self, temperature: Optional[float] = None) -> list[MilightCommand]:
        n = self.number
        if self.is_ibox:
            if self.type in FULL_COLOUR_TYPES:
                if temperature is None:
                    raise InvalidArgumentError(f"Missing temperature parameter for white mode on {self.name}")
                return [self.commands.on(n), self.commands.white_temperature(n, round_half_up(100 - temperature * 100))]
            return [self.commands.white_mode(n)]
        return [self.commands.on(n), self.commands.white_mode(n)]

    def night_mode_commands(self) -> list[MilightCommand]:
        n = self.number
        if self.type == ZoneType.BRIDGE:
            # The iBox lamp has no night mode, white mode is the closest
            return self.white_mode_commands()
        if self.is_ibox:
            return [self.commands.night_mode(n)]
        return [self.commands.on(n), self.commands.night_mode(n)]

    def scene_commands(self, scene_id: Optional[int] = None) -> list[MilightCommand]:
        n = self.number
        if self.is_ibox and scene_id:
            return [self.commands.effect_mode(n, scene_id)]
        return [self.commands.on(n), self.commands.effect_mode_next(n)]

    # ============================
    # Dispatch
    # ============================

    async def _dispatch(self, operation: str, commands: list[MilightCommand], retry: bool = False) -> bool:
        if not commands:
            self.logger.debug(f"{operation}() -> {self.name}: nothing to send")
            return True
        self.logger.debug(f"{operation}() -> {self.name}: {commands}")
        if retry:
            task = asyncio.create_task(self._send_again(operation, commands))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return await self._send(commands)

    async def _send_again(self, operation: str, commands: list[MilightCommand]) -> None:
        # UDP is lossy, so retryable batches are sent a second time shortly after
        await asyncio.sleep(Const.RETRY_DELAY)
        try:
            await self._send(commands)
        except Exception as e:
            self.logger.warning(f"Duplicate {operation}() to {self.name} failed: {e}")

    def cancel_pending(self) -> None:
        """Cancel duplicate sends that have not gone out yet"""
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
