"""
API-level models and command tables.

This module contains models and types that belong to the API layer:
- ZoneType, BridgeGeneration, LightMode (API-level concepts)
- MilightCommand, CommandTable (the primitive commands of each zone type)
- Zone (maps operations onto command batches)
- Constants used by the API and interface layers
"""

from .types import BridgeGeneration, ZoneType, LightMode, Const
from .commands import MilightCommand, CommandTable, get_command_table, LEGACY_COMMANDS, IBOX_COMMANDS
from .zone import Zone, zone_catalog, LEGACY_ZONES, IBOX_ZONES

__all__ = [
    # API-level models
    "Zone",
    "MilightCommand",
    "CommandTable",
    "get_command_table",
    "zone_catalog",
    "LEGACY_COMMANDS",
    "IBOX_COMMANDS",
    "LEGACY_ZONES",
    "IBOX_ZONES",

    # API-level types
    "BridgeGeneration",
    "ZoneType",
    "LightMode",
    "Const",
]
