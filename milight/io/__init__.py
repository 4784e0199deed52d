"""
Wire-level protocol implementation.

This module contains the lowest-level communication components:
- MilightClient - Raw UDP command sending, v6 session handshake
- discover_bridges - UDP broadcast discovery
- Frame building and reply parsing
"""

from .transport import MilightClient, ClientConst, frame_v6, parse_session
from .discovery import discover_bridges, DiscoveredBridge, DiscoveryConst, parse_reply, normalise_mac

__all__ = [
    "MilightClient",
    "ClientConst",
    "frame_v6",
    "parse_session",
    "discover_bridges",
    "DiscoveredBridge",
    "DiscoveryConst",
    "parse_reply",
    "normalise_mac",
]
