import asyncio

import pytest

from milight import (
    BridgeGeneration,
    InvalidArgumentError,
    LightMode,
    MilightTransportError,
    UnsupportedOperationError,
    Zone,
    ZoneType,
)
from milight.api import zone_catalog


class Recorder:
    def __init__(self, fail=False):
        self.batches = []
        self.fail = fail

    async def __call__(self, commands):
        if self.fail:
            raise MilightTransportError("unreachable")
        self.batches.append(list(commands))
        return True

    @property
    def names(self):
        return [[(c.name, c.value) for c in batch] for batch in self.batches]


def make_zone(zone_type, generation=BridgeGeneration.IBOX, number=1, send=None):
    return Zone("ac:cf:23:a1:b2:c3", number, zone_type, generation, send or Recorder())


@pytest.fixture
def recorder():
    return Recorder()


def test_zone_identity():
    zone = make_zone(ZoneType.RGBWW, number=3)
    assert zone.id == "ac:cf:23:a1:b2:c33RGBWW"
    assert zone.name == "Zone 3 RGBWW"
    assert zone.brightness == 1.0
    assert zone.mode == LightMode.COLOR


def test_catalog_sizes():
    assert len(zone_catalog(BridgeGeneration.LEGACY)) == 9
    assert len(zone_catalog(BridgeGeneration.IBOX)) == 22
    assert zone_catalog(BridgeGeneration.IBOX)[0] == (ZoneType.RGB, 1)


@pytest.mark.asyncio
async def test_turn_on_is_sent_twice(recorder):
    zone = make_zone(ZoneType.RGBWW, send=recorder)
    assert await zone.turn_on() is True
    assert recorder.names == [[("on", None)]]
    await asyncio.sleep(0.15)
    assert recorder.names == [[("on", None)], [("on", None)]]


@pytest.mark.asyncio
async def test_absolute_brightness(recorder):
    zone = make_zone(ZoneType.RGBWW, send=recorder)
    await zone.set_brightness(0.5)
    assert recorder.names[0] == [("on", None), ("brightness", 50)]
    assert zone.brightness == 0.5
    zone.cancel_pending()


@pytest.mark.asyncio
async def test_brightness_below_threshold_turns_off(recorder):
    zone = make_zone(ZoneType.RGBW, send=recorder)
    await zone.set_brightness(0.005)
    assert recorder.names[0] == [("off", None)]
    zone.cancel_pending()


@pytest.mark.asyncio
async def test_white_brightness_steps_from_last_level(recorder):
    zone = make_zone(ZoneType.WHITE, generation=BridgeGeneration.LEGACY, send=recorder)
    await zone.set_brightness(0.5)
    assert recorder.names[0] == [("on", None)] + [("bright_down", None)] * 5
    await zone.set_brightness(0.8)
    assert recorder.names[1] == [("on", None)] + [("bright_up", None)] * 3
    await zone.set_brightness(0.99)
    assert recorder.names[2] == [("on", None), ("max_bright", None)]
    zone.cancel_pending()


@pytest.mark.asyncio
async def test_unchanged_relative_brightness_sends_nothing(recorder):
    zone = make_zone(ZoneType.WHITE, send=recorder)
    await zone.set_brightness(0.5)
    zone.cancel_pending()
    recorder.batches.clear()
    assert await zone.set_brightness(0.52) is True
    assert recorder.batches == []


@pytest.mark.asyncio
async def test_rgb_brightness(recorder):
    legacy = make_zone(ZoneType.RGB, generation=BridgeGeneration.LEGACY, send=recorder)
    await legacy.set_brightness(0.5)
    assert recorder.names[0] == [("on", None)] + [("bright_down", None)] * 5
    await legacy.set_brightness(0.96)
    assert recorder.names[1] == [("on", None)] + [("bright_up", None)] * 5
    legacy.cancel_pending()

    ibox = Recorder()
    zone = make_zone(ZoneType.RGB, send=ibox)
    await zone.set_brightness(0.7)
    assert ibox.names[0] == [("bright_down", None)] * 3
    zone.cancel_pending()


@pytest.mark.parametrize("zone_type, generation, hue, expected", [
    (ZoneType.RGBWW, BridgeGeneration.IBOX, 0.5, [("on", None), ("hue", 139)]),
    (ZoneType.RGBWW, BridgeGeneration.IBOX, 1.0, [("on", None), ("hue", 11)]),
    (ZoneType.RGBW, BridgeGeneration.LEGACY, 0.0, [("on", None), ("hue", 3)]),
    (ZoneType.BRIDGE, BridgeGeneration.IBOX, 0.5, [("hue", 132)]),
    (ZoneType.RGB, BridgeGeneration.LEGACY, 0.5, [("hue", 129)]),
])
def test_hue_commands(zone_type, generation, hue, expected):
    zone = make_zone(zone_type, generation=generation)
    assert [(c.name, c.value) for c in zone.hue_commands(hue)] == expected


def test_bridge_hue_zero():
    zone = make_zone(ZoneType.BRIDGE)
    assert zone.calibrated_hue(0.0) == pytest.approx(0.015)
    assert [(c.name, c.value) for c in zone.hue_commands(0.0)] == [("hue", 5)]


def test_calibrated_hue_wraps():
    zone = make_zone(ZoneType.RGBW)
    assert zone.calibrated_hue(0.95) == pytest.approx(0.065)
    assert zone.calibrated_hue(0.5) == pytest.approx(0.615)


@pytest.mark.asyncio
async def test_set_hue_and_saturation_is_one_batch(recorder):
    zone = make_zone(ZoneType.RGBWW, send=recorder)
    await zone.set_hue_and_saturation(0.5, 0.3)
    assert recorder.names[0] == [("on", None), ("hue", 139), ("on", None), ("saturation", 70)]
    assert zone.hue == 0.5
    assert zone.saturation == 0.3
    assert zone.mode == LightMode.COLOR
    zone.cancel_pending()


@pytest.mark.asyncio
async def test_temperature_is_sent_once(recorder):
    zone = make_zone(ZoneType.RGBWW, send=recorder)
    await zone.set_temperature(0.25)
    await asyncio.sleep(0.15)
    assert recorder.names == [[("on", None), ("white_temperature", 75)]]
    assert zone.mode == LightMode.TEMPERATURE


@pytest.mark.asyncio
async def test_white_temperature_steps(recorder):
    zone = make_zone(ZoneType.WHITE, send=recorder)
    await zone.set_temperature(0.5)
    assert recorder.names[0] == [("on", None)] + [("cooler", None)] * 5
    await zone.set_temperature(0.7)
    assert recorder.names[1] == [("on", None)] + [("warmer", None)] * 2
    assert zone.temperature == 0.7


@pytest.mark.asyncio
async def test_white_mode(recorder):
    zone = make_zone(ZoneType.RGBWW, send=recorder)
    with pytest.raises(InvalidArgumentError):
        await zone.enable_white_mode()
    await zone.enable_white_mode(1.0)
    assert recorder.names[0] == [("on", None), ("white_temperature", 0)]
    zone.cancel_pending()

    assert [c.name for c in make_zone(ZoneType.RGBW).white_mode_commands()] == ["white_mode"]
    legacy = make_zone(ZoneType.RGBW, generation=BridgeGeneration.LEGACY)
    assert [c.name for c in legacy.white_mode_commands()] == ["on", "white_mode"]


def test_night_mode_commands():
    assert [c.name for c in make_zone(ZoneType.RGBWW).night_mode_commands()] == ["night_mode"]
    assert [c.name for c in make_zone(ZoneType.BRIDGE).night_mode_commands()] == ["white_mode"]
    legacy = make_zone(ZoneType.WHITE, generation=BridgeGeneration.LEGACY)
    assert [c.name for c in legacy.night_mode_commands()] == ["on", "night_mode"]


@pytest.mark.asyncio
async def test_scenes(recorder):
    zone = make_zone(ZoneType.RGBWW, send=recorder)
    await zone.toggle_scene(3)
    await zone.toggle_scene()
    assert recorder.names == [[("effect_mode", 3)], [("on", None), ("effect_mode_next", None)]]
    with pytest.raises(InvalidArgumentError):
        await zone.toggle_scene(10)

    legacy = make_zone(ZoneType.RGBW, generation=BridgeGeneration.LEGACY)
    assert [c.name for c in legacy.scene_commands(3)] == ["on", "effect_mode_next"]


@pytest.mark.asyncio
async def test_scene_speed(recorder):
    zone = make_zone(ZoneType.RGBW, send=recorder)
    await zone.set_scene_speed_up()
    await zone.set_scene_speed_down()
    assert recorder.names == [[("effect_speed_up", None)], [("effect_speed_down", None)]]


@pytest.mark.asyncio
@pytest.mark.parametrize("zone_type, call", [
    (ZoneType.WHITE, lambda z: z.set_hue(0.5)),
    (ZoneType.RGBW, lambda z: z.set_hue_and_saturation(0.5, 0.5)),
    (ZoneType.RGB, lambda z: z.set_temperature(0.5)),
    (ZoneType.WHITE, lambda z: z.enable_white_mode()),
    (ZoneType.RGB, lambda z: z.enable_night_mode()),
    (ZoneType.BRIDGE, lambda z: z.toggle_scene()),
])
async def test_unsupported_operations(zone_type, call, recorder):
    zone = make_zone(zone_type, send=recorder)
    with pytest.raises(UnsupportedOperationError):
        await call(zone)
    assert recorder.batches == []


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [-0.1, 1.5, None])
async def test_out_of_range_values_are_rejected(value, recorder):
    zone = make_zone(ZoneType.RGBWW, send=recorder)
    with pytest.raises(InvalidArgumentError):
        await zone.set_brightness(value)
    assert zone.brightness == 1.0


@pytest.mark.asyncio
async def test_failed_duplicate_is_logged(caplog):
    state = {"calls": 0}

    async def flaky(commands):
        state["calls"] += 1
        if state["calls"] > 1:
            raise MilightTransportError("gone")
        return True

    zone = make_zone(ZoneType.RGBWW, send=flaky)
    assert await zone.turn_off() is True
    await asyncio.sleep(0.15)
    assert state["calls"] == 2
    assert "Duplicate turn_off() to Zone 1 RGBWW failed" in caplog.text


@pytest.mark.asyncio
async def test_send_failure_propagates():
    zone = make_zone(ZoneType.RGBWW, send=Recorder(fail=True))
    with pytest.raises(MilightTransportError):
        await zone.set_temperature(0.5)


@pytest.mark.asyncio
async def test_bridge_lamp_has_no_saturation(recorder):
    zone = make_zone(ZoneType.BRIDGE, send=recorder)
    with pytest.raises(UnsupportedOperationError):
        await zone.set_hue_and_saturation(0.5, 0.5)
    assert recorder.batches == []
    assert zone.hue == 1.0


HUE_ZONES = {
    BridgeGeneration.LEGACY: {ZoneType.RGB, ZoneType.RGBW},
    BridgeGeneration.IBOX: {ZoneType.RGB, ZoneType.RGBW, ZoneType.RGBWW, ZoneType.BRIDGE, ZoneType.EIGHT_ZONE_CONTROLLER},
}


@pytest.mark.asyncio
@pytest.mark.parametrize("generation", list(BridgeGeneration))
@pytest.mark.parametrize("zone_type", list(ZoneType))
async def test_set_hue_by_zone_type_and_generation(zone_type, generation, recorder):
    zone = make_zone(zone_type, generation=generation, send=recorder)
    if zone_type in HUE_ZONES[generation]:
        assert await zone.set_hue(0.5)
        assert recorder.batches[0][-1].name == "hue"
        zone.cancel_pending()
    else:
        with pytest.raises(UnsupportedOperationError):
            await zone.set_hue(0.5)
        assert recorder.batches == []


@pytest.mark.asyncio
async def test_missing_primitive_names_the_primitive(recorder):
    zone = make_zone(ZoneType.RGBWW, generation=BridgeGeneration.LEGACY, send=recorder)
    with pytest.raises(UnsupportedOperationError, match="Can not send primitive 'on' on zone type RGBWW"):
        await zone.turn_on()
    assert recorder.batches == []


@pytest.mark.asyncio
@pytest.mark.parametrize("zone_type, call", [
    (ZoneType.WHITE, lambda z: z.set_hue(1.5)),
    (ZoneType.RGBW, lambda z: z.set_hue_and_saturation(None, 0.5)),
    (ZoneType.RGB, lambda z: z.set_temperature(-1)),
])
async def test_unsupported_operation_is_reported_before_bad_value(zone_type, call, recorder):
    zone = make_zone(zone_type, send=recorder)
    with pytest.raises(UnsupportedOperationError):
        await call(zone)
    assert recorder.batches == []
