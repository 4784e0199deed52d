import pytest

pytest.importorskip("aiomqtt")
yaml = pytest.importorskip("yaml")

from milight import (
    BridgeManager,
    Dim,
    LightHue,
    LightHueSaturation,
    LightTemperature,
    MilightDevice,
    NightMode,
    OnOff,
    SceneSpeed,
    SetLightMode,
    ToggleScene,
    WhiteMode,
    ZoneType,
)
from milight.mqtt import (
    Const,
    MilightMQTTBridge,
    capabilities_from_payload,
    effect_capability,
    mireds_to_temperature,
    state_from_device,
    supported_color_modes,
    temperature_to_mireds,
)

CONFIG = {
    "homeassistant": {"discovery_prefix": "homeassistant"},
    "mqtt": {"host": "localhost", "port": 1883, "user": "user", "password": "secret", "keepalive": 60},
    "milight": [
        {"mac": "ac:cf:23:a1:b2:c3", "name": "Lounge", "zones": [
            {"type": "RGBWW", "number": 1, "name": "Lamp"},
            {"type": "White", "number": 2},
        ]},
    ],
}


def write_config(tmp_path, config):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config))
    return str(path)


def test_payload_off_wins():
    assert capabilities_from_payload({"state": "OFF", "brightness": 100}) == [OnOff(False)]


def test_payload_plain_on():
    assert capabilities_from_payload({"state": "ON"}) == [OnOff(True)]


def test_payload_brightness_and_colour():
    capabilities = capabilities_from_payload({"state": "ON", "brightness": 255, "color": {"h": 180, "s": 50}})
    assert capabilities == [Dim(1.0), LightHue(0.5)]

    capabilities = capabilities_from_payload({"color": {"h": 90, "s": 50}}, has_saturation=True)
    assert capabilities == [LightHueSaturation(hue=0.25, saturation=0.5)]


def test_payload_colour_temperature():
    assert capabilities_from_payload({"color_temp": 370}) == [LightTemperature(1.0)]
    assert capabilities_from_payload({"color_temp": 100}) == [LightTemperature(0.0)]


@pytest.mark.parametrize("effect, capability", [
    ("night", NightMode()),
    ("white", WhiteMode()),
    ("disco", SetLightMode("disco")),
    ("speed_up", SceneSpeed(faster=True)),
    ("speed_down", SceneSpeed(faster=False)),
    ("7", ToggleScene(7)),
])
def test_effects(effect, capability):
    assert effect_capability(effect) == capability


def test_unknown_effect():
    with pytest.raises(ValueError):
        capabilities_from_payload({"effect": "strobe"})


def test_mireds_round_trip_ends():
    assert mireds_to_temperature(Const.MIREDS_COOL) == 0
    assert mireds_to_temperature(Const.MIREDS_WARM) == 1
    assert temperature_to_mireds(0) == Const.MIREDS_COOL
    assert temperature_to_mireds(1) == Const.MIREDS_WARM


def test_supported_color_modes():
    assert supported_color_modes(ZoneType.WHITE) == ["color_temp"]
    assert supported_color_modes(ZoneType.RGBWW) == ["hs", "color_temp"]
    assert supported_color_modes(ZoneType.RGBW) == ["hs"]


def test_state_from_device(transport_factory):
    device = MilightDevice(BridgeManager(transport_factory=transport_factory), {"bridge_mac_address": "ac:cf:23:a1:b2:c3", "zone_number": 1, "driver_type": "RGBWW"})
    assert state_from_device(device) == {"state": "OFF"}

    device.capability_values.update({"onoff": True, "dim": 0.5, "light_mode": "color", "light_hue": 0.5, "light_saturation": 0.25})
    assert state_from_device(device) == {"state": "ON", "brightness": 128, "color_mode": "hs", "color": {"h": 180.0, "s": 25.0}}

    device.capability_values.update({"light_mode": "temperature", "light_temperature": 1.0})
    state = state_from_device(device)
    assert state["color_mode"] == "color_temp"
    assert state["color_temp"] == Const.MIREDS_WARM


def test_config_is_loaded(tmp_path):
    bridge = MilightMQTTBridge(write_config(tmp_path, CONFIG))
    bridge.setup_config()
    bridge.setup_milight()
    assert len(bridge.devices) == 2
    lamp, white = bridge.devices
    assert bridge.device_labels[lamp] == "Lamp"
    assert bridge.device_labels[white] == "Lounge Zone 2 White"
    assert white.identity.driver_type == ZoneType.WHITE


@pytest.mark.parametrize("broken, message", [
    ({"mqtt": CONFIG["mqtt"], "milight": CONFIG["milight"]}, "Missing required config sections"),
    ({**CONFIG, "mqtt": {"host": "localhost"}}, "Missing MQTT config fields"),
    ({**CONFIG, "milight": [{"mac": "not-a-mac", "zones": []}]}, "Invalid MAC address"),
    ({**CONFIG, "milight": [{"mac": "ac:cf:23:a1:b2:c3", "zones": []}]}, "must have a list of zones"),
    ({**CONFIG, "milight": [{"mac": "ac:cf:23:a1:b2:c3", "zones": [{"type": "Zigbee", "number": 1}]}]}, "Invalid zone type"),
    ({**CONFIG, "milight": [{"mac": "ac:cf:23:a1:b2:c3", "zones": [{"type": "RGBW", "number": 9}]}]}, "Invalid zone number"),
])
def test_invalid_config(tmp_path, broken, message):
    bridge = MilightMQTTBridge(write_config(tmp_path, broken))
    with pytest.raises(ValueError, match=message):
        bridge.setup_config()


def test_device_config(tmp_path):
    bridge = MilightMQTTBridge(write_config(tmp_path, CONFIG))
    bridge.setup_config()
    bridge.setup_milight()
    bridge.discovery_prefix = "homeassistant"
    lamp, white = bridge.devices

    config = bridge.device_config(lamp)
    assert config["command_topic"] == "homeassistant/light/milight-python/accf23a1b2c3_rgbww1/set"
    assert config["schema"] == "json"
    assert config["supported_color_modes"] == ["hs", "color_temp"]
    assert config["effect_list"] == Const.EFFECTS
    assert config["origin"]["name"] == "milight-python"

    config = bridge.device_config(white)
    assert config["supported_color_modes"] == ["color_temp"]
    assert "effect" not in config
