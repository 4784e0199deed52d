"""
High-level interface models.

This module contains models that belong to the interface layer:
- BridgeManager (owns and tracks every bridge in use)
- Bridge, BridgeState and the bridge lifecycle events
- MilightDevice (binds a smart-home device to a zone) and its capabilities
"""

from .events import (
    BridgeEvent,
    BridgeOnline,
    BridgeOffline,
    BridgeIPChanged,
    BridgeDestroyed,
    Subscription,
)
from .bridge import Bridge, BridgeState, device_key
from .manager import BridgeManager
from .capabilities import (
    Capability,
    OnOff,
    Dim,
    LightHue,
    LightHueSaturation,
    LightTemperature,
    SetLightMode,
    WhiteMode,
    NightMode,
    ToggleScene,
    SceneSpeed,
)
from .device import MilightDevice, DeviceIdentity, bridge_entry, zone_entries, supports_driver_type

__all__ = [
    # Registry and bridges
    "BridgeManager",
    "Bridge",
    "BridgeState",
    "device_key",

    # Events
    "BridgeEvent",
    "BridgeOnline",
    "BridgeOffline",
    "BridgeIPChanged",
    "BridgeDestroyed",
    "Subscription",

    # Devices
    "MilightDevice",
    "DeviceIdentity",
    "bridge_entry",
    "zone_entries",
    "supports_driver_type",

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
]
