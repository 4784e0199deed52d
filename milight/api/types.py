"""
API-level type definitions.

This module contains types and enums that belong to the API layer:
- Bridge generations and zone types
- Light modes tracked by a zone
- Constants used by the API and interface layers
"""

from enum import Enum
from typing import Self


class BridgeGeneration(Enum):
    LEGACY = "legacy"   # v3/v4 WiFi bridge, port 8899
    IBOX = "iBox"       # v6 iBox bridge, port 5987

    @classmethod
    def parse(cls, value: "str | BridgeGeneration") -> Self:
        """Accept a generation, its value, or the discovery names 'legacy' / 'v6'"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            lowered = value.lower()
            if lowered in ("ibox", "v6", "6"):
                return cls.IBOX
            if lowered in ("legacy", "v3", "v4", "3", "4"):
                return cls.LEGACY
        raise ValueError(f"Unknown bridge generation: {value!r}")

    @property
    def discovery_name(self) -> str:
        return "v6" if self == BridgeGeneration.IBOX else "legacy"


class ZoneType(Enum):
    RGB = "RGB"
    RGBW = "RGBW"
    WHITE = "White"
    RGBWW = "RGBWW"
    BRIDGE = "Bridge"  # The iBox's own lamp
    EIGHT_ZONE_CONTROLLER = "8-Zone Controller"

    @classmethod
    def parse(cls, value: "str | ZoneType") -> Self:
        """Accept a zone type, its value or its name, case-insensitively"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for member in cls:
                if value.lower() in (member.value.lower(), member.name.lower()):
                    return member
        raise ValueError(f"Unknown zone type: {value!r}")


class LightMode(Enum):
    COLOR = "color"
    TEMPERATURE = "temperature"


# API-level constants
class Const:
    """API-level constants"""
    # Duplicate send
    RETRY_DELAY = 0.1  # seconds between the immediate send and its duplicate

    # Brightness / temperature thresholds
    OFF_BELOW = 0.01
    MAX_ABOVE = 0.95
    RGB_MAX_STEPS = 5  # bright_up pulses that saturate an RGB bulb
    STEPS_PER_UNIT = 10  # relative bulbs step in tenths

    # Hue calibration offsets, added before mapping to the bulb's hue wheel
    HUE_OFFSET_BRIDGE = 0.015
    HUE_OFFSET_FULL_COLOR = 0.045  # RGBWW and 8-zone controller
    HUE_OFFSET_RGBW_IBOX = 0.115
    HUE_OFFSET_RGBW_LEGACY = 0.0
    HUE_ZERO_NUDGE = 0.01  # some bulbs reject a hue of exactly zero

    # Scenes
    MIN_SCENE = 1
    MAX_SCENE = 9

    # Liveness
    BRIDGE_POLL_INTERVAL = 30.0  # seconds
    OFFLINE_THRESHOLD = 1  # misses above this mark the bridge offline
    OFFLINE_MARKED = 5  # sentinel counter value for an offline bridge
