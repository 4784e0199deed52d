"""
Capability changes a device can be asked to apply.

Each variant carries its own typed payload; MilightDevice.apply() dispatches
on them with a match statement.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class OnOff:
    on: bool


@dataclass(frozen=True)
class Dim:
    level: float  # 0-1


@dataclass(frozen=True)
class LightHue:
    hue: float  # 0-1


@dataclass(frozen=True)
class LightHueSaturation:
    """Either value may be omitted, the last known value is used instead"""
    hue: Optional[float] = None
    saturation: Optional[float] = None


@dataclass(frozen=True)
class LightTemperature:
    temperature: float  # 0 (cool) - 1 (warm)


@dataclass(frozen=True)
class SetLightMode:
    """'color', 'temperature', 'disco', 'night', or a scene number"""
    mode: str | int


@dataclass(frozen=True)
class WhiteMode:
    pass


@dataclass(frozen=True)
class NightMode:
    pass


@dataclass(frozen=True)
class ToggleScene:
    scene: Optional[int] = None


@dataclass(frozen=True)
class SceneSpeed:
    faster: bool


Capability = (
    OnOff
    | Dim
    | LightHue
    | LightHueSaturation
    | LightTemperature
    | SetLightMode
    | WhiteMode
    | NightMode
    | ToggleScene
    | SceneSpeed
)
