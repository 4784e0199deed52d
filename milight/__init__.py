"""
Milight Python Library

A Python library for controlling Milight bulbs through legacy (v3/v4) and
iBox (v6) WiFi bridges.

This library provides three distinct layers of abstraction:

1. **io**: Wire-level protocol implementation (UDP frames, v6 sessions, discovery)
2. **api**: Command tables and zones (which commands each bulb type accepts)
3. **interface**: Bridges, the bridge manager and device adapters (high-level objects)

Example usage:
    import milight

    # High-level interface (recommended for most users)
    async with milight.BridgeManager() as manager:
        device = milight.MilightDevice(manager, {"bridge_mac_address": "ac:cf:23:a1:b2:c3", "zone_number": 1, "driver_type": "RGBWW"})
        await device.init()
        await device.apply(milight.OnOff(True))
        await device.apply(milight.LightHue(0.6))

    # Zone access (for advanced users)
    bridges = await manager.discover_bridges()
    zone = bridges[0].get_zone(milight.ZoneType.WHITE, 2)
    await zone.set_brightness(0.5)
"""

# High-level interface (recommended for most users)
from .interface import BridgeManager, Bridge, BridgeState, MilightDevice, DeviceIdentity

# Bridge events
from .interface import BridgeEvent, BridgeOnline, BridgeOffline, BridgeIPChanged, BridgeDestroyed, Subscription

# Capabilities
from .interface import Capability, OnOff, Dim, LightHue, LightHueSaturation, LightTemperature, SetLightMode, WhiteMode, NightMode, ToggleScene, SceneSpeed

# API-level models
from .api import Zone, MilightCommand, CommandTable, get_command_table

# Low-level models
from .io import MilightClient, DiscoveredBridge, discover_bridges

# Shared types and exceptions
from .api.types import BridgeGeneration, ZoneType, LightMode, Const
from .exceptions import (
    MilightError,
    InvalidArgumentError,
    UnsupportedOperationError,
    MissingFieldError,
    NotFoundError,
    MilightTransportError,
    MilightTimeoutError,
)

# Utilities
from .utils import run_with_keyboard_interrupt

__version__ = "0.1.0"

# Public API - these are the main classes users should import
__all__ = [
    # High-level interface (recommended)
    "BridgeManager",
    "Bridge",
    "BridgeState",
    "MilightDevice",
    "DeviceIdentity",

    # Events
    "BridgeEvent",
    "BridgeOnline",
    "BridgeOffline",
    "BridgeIPChanged",
    "BridgeDestroyed",
    "Subscription",

    # Capabilities
    "Capability",
    "OnOff",
    "Dim",
    "LightHue",
    "LightHueSaturation",
    "LightTemperature",
    "SetLightMode",
    "WhiteMode",
    "NightMode",
    "ToggleScene",
    "SceneSpeed",

    # API-level models (for advanced users)
    "Zone",
    "MilightCommand",
    "CommandTable",
    "get_command_table",

    # Low-level models (for advanced users)
    "MilightClient",
    "DiscoveredBridge",
    "discover_bridges",

    # Exceptions
    "MilightError",
    "InvalidArgumentError",
    "UnsupportedOperationError",
    "MissingFieldError",
    "NotFoundError",
    "MilightTransportError",
    "MilightTimeoutError",

    # Types and enums
    "BridgeGeneration",
    "ZoneType",
    "LightMode",
    "Const",

    # Utilities
    "run_with_keyboard_interrupt",
]
