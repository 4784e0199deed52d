import asyncio
import yaml
from milight import BridgeManager, MilightDevice, OnOff, Dim, LightHue, LightTemperature, run_with_keyboard_interrupt


async def main():
    config = yaml.safe_load(open("test-config.yaml"))
    bridge_config = config.get('milight')[0]
    zone_config = bridge_config['zones'][0]

    async with BridgeManager() as manager:
        device = MilightDevice(manager, {
            "bridge_mac_address": bridge_config['mac'],
            "zone_number": zone_config['number'],
            "driver_type": zone_config['type'],
        })
        bridge = await device.init()
        print(f"Using {device.name} on {bridge}")

        await device.apply(OnOff(True))
        await asyncio.sleep(1)

        for level in (0.2, 0.6, 1.0):
            print(f"  • brightness {level}")
            await device.apply(Dim(level))
            await asyncio.sleep(1)

        if device.has_capability("light_hue"):
            for hue in (0.0, 0.33, 0.66):
                print(f"  • hue {hue}")
                await device.apply(LightHue(hue))
                await asyncio.sleep(1)

        if device.has_capability("light_temperature"):
            for temperature in (0.0, 1.0):
                print(f"  • temperature {temperature}")
                await device.apply(LightTemperature(temperature))
                await asyncio.sleep(1)

        await device.apply(OnOff(False))
        device.delete()

if __name__ == "__main__":
    run_with_keyboard_interrupt(main)
