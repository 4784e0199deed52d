import asyncio
import json
import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

import aiomqtt
import yaml
from colorama import Fore, Style

from . import (
    BridgeManager,
    Capability,
    Dim,
    LightHue,
    LightHueSaturation,
    LightTemperature,
    MilightDevice,
    MilightError,
    NightMode,
    NotFoundError,
    OnOff,
    SceneSpeed,
    SetLightMode,
    ToggleScene,
    WhiteMode,
    ZoneType,
    __version__,
)
from .api.types import Const as ApiConst
from .utils import map_range, run_with_keyboard_interrupt, setup_signal_handlers


class Const:

    # Device startup
    INIT_RETRY_DELAY = 10  # seconds between attempts to find a device's bridge

    # MQTT settings
    MQTT_RECONNECT_MIN_DELAY = 1
    MQTT_RECONNECT_MAX_DELAY = 10
    MQTT_SERVICE_PREFIX = "milight-python"

    # Logging
    LOG_FILE = 'milight-mqtt.log'
    DEBUG_FILE = 'milight-mqtt.debug.log'
    LOG_MAX_BYTES = 5 * 1024 * 1024  # 5MB
    LOG_BACKUP_COUNT = 5

    # Home Assistant colour temperature range, in mireds
    MIREDS_COOL = 153
    MIREDS_WARM = 370

    # Effects offered to Home Assistant
    EFFECTS = ["disco", "night", "white", "speed_up", "speed_down"] + [str(n) for n in range(ApiConst.MIN_SCENE, ApiConst.MAX_SCENE + 1)]


# ================================
#     PAYLOAD <-> CAPABILITIES
# ================================

def mireds_to_temperature(mireds: float) -> float:
    """HA colour temperature (mireds) to 0 (cool) - 1 (warm)"""
    mireds = max(Const.MIREDS_COOL, min(Const.MIREDS_WARM, mireds))
    return (mireds - Const.MIREDS_COOL) / (Const.MIREDS_WARM - Const.MIREDS_COOL)


def temperature_to_mireds(temperature: float) -> int:
    return round(map_range(0, 1, Const.MIREDS_COOL, Const.MIREDS_WARM, temperature))


def capabilities_from_payload(payload: dict[str, Any], has_saturation: bool = False) -> list[Capability]:
    """Translate a Home Assistant JSON-schema light command into capability changes"""
    if payload.get("state") == "OFF":
        return [OnOff(False)]

    capabilities: list[Capability] = []
    if "brightness" in payload:
        capabilities.append(Dim(max(0, min(255, payload["brightness"])) / 255))
    if "color" in payload and "h" in payload["color"]:
        hue = (payload["color"]["h"] % 360) / 360
        if has_saturation and "s" in payload["color"]:
            capabilities.append(LightHueSaturation(hue=hue, saturation=max(0, min(100, payload["color"]["s"])) / 100))
        else:
            capabilities.append(LightHue(hue))
    if "color_temp" in payload:
        capabilities.append(LightTemperature(mireds_to_temperature(payload["color_temp"])))
    if "effect" in payload:
        capabilities.append(effect_capability(str(payload["effect"])))
    if not capabilities and payload.get("state") == "ON":
        capabilities.append(OnOff(True))
    return capabilities


def effect_capability(effect: str) -> Capability:
    match effect:
        case "night":
            return NightMode()
        case "white":
            return WhiteMode()
        case "disco":
            return SetLightMode("disco")
        case "speed_up":
            return SceneSpeed(faster=True)
        case "speed_down":
            return SceneSpeed(faster=False)
        case _ if effect.isdigit():
            return ToggleScene(int(effect))
    raise ValueError(f"Unknown effect: {effect}")


def state_from_device(device: MilightDevice) -> dict[str, Any]:
    """Build a JSON-schema light state from the device's last applied capabilities"""
    values = device.capability_values
    state: dict[str, Any] = {"state": "ON" if values.get("onoff") else "OFF"}
    if "dim" in values:
        state["brightness"] = round(values["dim"] * 255)
    if values.get("light_mode") == "temperature" and "light_temperature" in values:
        state["color_mode"] = "color_temp"
        state["color_temp"] = temperature_to_mireds(values["light_temperature"])
    elif "light_hue" in values:
        state["color_mode"] = "hs"
        state["color"] = {"h": round(values["light_hue"] * 360, 1), "s": round(values.get("light_saturation", 1.0) * 100, 1)}
    return state


def supported_color_modes(driver_type: ZoneType) -> list[str]:
    match driver_type:
        case ZoneType.WHITE:
            return ["color_temp"]
        case ZoneType.RGBWW | ZoneType.EIGHT_ZONE_CONTROLLER:
            return ["hs", "color_temp"]
        case _:
            return ["hs"]


class MilightMQTTBridge:
    """Bridge between Milight bridges and MQTT/Home Assistant.

    Creates one MilightDevice per configured zone, publishes Home Assistant
    auto-discovery configs and turns light commands into capability changes.
    """

    # ================================
    #          INIT & RUN
    # ================================

    def __init__(self, config_path: str = "config.yaml") -> None:
        self.config: dict[str, Any]
        with open(config_path) as f:
            self.config = yaml.safe_load(f)

        self.logger: logging.Logger = logging.getLogger('MilightMQTTBridge')
        self.discovery_prefix: str
        self.manager: BridgeManager
        self.mqttc: Optional[aiomqtt.Client] = None
        self.setup_complete: bool = False
        self.devices: list[MilightDevice] = []
        self.topic_device: dict[str, MilightDevice] = {}  # Map of topics to devices
        self.device_labels: dict[MilightDevice, str] = {}
        self._tasks: set[asyncio.Task] = set()

        self.global_config: dict[str, Any] = {
            "origin": {
                "name": "milight-python",
                "sw": __version__,
            }
        }

    async def run(self) -> None:
        self.setup_config()
        self.setup_logging()
        self.logger.info("==================================== Starting MilightMQTTBridge ====================================")
        self.setup_milight()
        self.discovery_prefix = self.config['homeassistant']['discovery_prefix']

        # Start MQTT message handling task
        self.mqtt_task = asyncio.create_task(self._mqtt_message_handler())

        # Find bridges, retrying devices whose bridge isn't answering yet
        for device in self.devices:
            self._spawn(self._init_device(device))

        self.manager.start()
        self.setup_complete = True

        while True:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        """Clean shutdown of the bridge"""
        for task in list(self._tasks):
            task.cancel()
        await self.manager.stop()
        self.manager.destroy()
        if hasattr(self, 'mqtt_task'):
            self.mqtt_task.cancel()
            try:
                await self.mqtt_task
            except asyncio.CancelledError:
                pass

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ================================
    #            CONFIG
    # ================================

    def setup_config(self) -> None:
        try:

            required_sections = ['homeassistant', 'mqtt', 'milight']
            missing = [s for s in required_sections if s not in self.config]
            if missing:
                raise ValueError(f"Missing required config sections: {', '.join(missing)}")

            # Validate MQTT config
            mqtt_required = ['host', 'port', 'user', 'password', 'keepalive']
            missing = [f for f in mqtt_required if f not in self.config['mqtt']]
            if missing:
                raise ValueError(f"Missing MQTT config fields: {', '.join(missing)}")

            # Validate Milight config
            if not isinstance(self.config['milight'], list):
                raise ValueError("milight config must be a list")

            for i, config in enumerate(self.config['milight']):

                # Validate MAC address format (xx:xx:xx:xx:xx:xx)
                mac = config.get('mac', '')
                if not re.match(r'^([0-9A-Fa-f]{2}[:-]){5}([0-9A-Fa-f]{2})$', mac):
                    raise ValueError(f"Invalid MAC address format in Milight config {i}: {mac}")

                zones = config.get('zones')
                if not isinstance(zones, list) or not zones:
                    raise ValueError(f"Milight config {i} must have a list of zones")

                for j, zone in enumerate(zones):
                    missing = [f for f in ['type', 'number'] if f not in zone]
                    if missing:
                        raise ValueError(f"Missing zone config fields in Milight config {i} zone {j}: {', '.join(missing)}")
                    try:
                        ZoneType.parse(zone['type'])
                    except ValueError:
                        raise ValueError(f"Invalid zone type in Milight config {i} zone {j}: {zone['type']}")
                    number = zone['number']
                    if not isinstance(number, int) or number < 1 or number > 8:
                        raise ValueError(f"Invalid zone number in Milight config {i} zone {j}: {number}")

        except ValueError as e:
            self.logger.error(f"Failed to load config file: {e}")
            raise

    # ================================
    #             LOGGING
    # ================================

    def setup_logging(self) -> None:
        """Configure logging with both file and console handlers."""
        self.logger.setLevel(logging.DEBUG)

        # File handler
        file_handler = RotatingFileHandler(
            Const.LOG_FILE,
            maxBytes=Const.LOG_MAX_BYTES,
            backupCount=Const.LOG_BACKUP_COUNT
        )
        # Exclude debug messages
        file_handler.addFilter(lambda record: record.levelno != logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(fmt="%(asctime)s\t%(levelname)s\t%(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
        self.logger.addHandler(file_handler)

        # Debug only handler
        debug_handler = logging.FileHandler(Const.DEBUG_FILE)
        debug_handler.setLevel(logging.DEBUG)
        debug_handler.setFormatter(logging.Formatter(fmt="%(asctime)s\t%(levelname)s\t%(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
        self.logger.addHandler(debug_handler)

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s.%(msecs)03d %(levelname)s: %(message)s', datefmt='%H:%M:%S'
        ))
        self.logger.addHandler(console_handler)

    # ================================
    #            MILIGHT
    # ================================

    def setup_milight(self) -> None:
        self.manager = BridgeManager(logger=self.logger)
        for config in self.config['milight']:
            for zone in config['zones']:
                device = MilightDevice(
                    self.manager,
                    {"bridge_mac_address": config['mac'], "zone_number": zone['number'], "driver_type": zone['type']},
                    settings={k: zone[k] for k in ('hue_calibration', 'invert_red_and_green') if k in zone},
                    logger=self.logger,
                )
                device.on_availability_change = self._device_availability_change
                self.devices.append(device)
                self.device_labels[device] = zone.get('name') or f"{config.get('name', 'Milight')} {device.name}"

    async def _init_device(self, device: MilightDevice) -> None:
        while True:
            try:
                await device.init()
                break
            except NotFoundError:
                self.logger.warning(f"Bridge for {device.name} not found, retrying in {Const.INIT_RETRY_DELAY} seconds")
            except MilightError as e:
                self.logger.error(f"Failed to initialise {device.name}: {e}")
            await asyncio.sleep(Const.INIT_RETRY_DELAY)
        if self.mqttc is not None:
            await self.publish_device(device)

    async def _device_availability_change(self, device: MilightDevice, available: bool) -> None:
        print(Fore.YELLOW + f"Milight: {device.name} on {device.identity.mac} is " + Style.BRIGHT + ("online" if available else "offline") + Style.RESET_ALL)
        if self.mqttc is None:
            return
        await self.mqttc.publish(self._availability_topic(device), "online" if available else "offline", retain=True)

    # ================================
    #              MQTT
    # ================================

    async def _mqtt_message_handler(self) -> None:
        """Handle incoming MQTT messages with automatic reconnection per aiomqtt docs."""
        interval = Const.MQTT_RECONNECT_MIN_DELAY

        while True:
            try:
                mqtt_config = self.config["mqtt"]
                client = aiomqtt.Client(
                    hostname=mqtt_config["host"],
                    port=mqtt_config["port"],
                    username=mqtt_config["user"],
                    password=mqtt_config["password"],
                    keepalive=mqtt_config["keepalive"],
                    will=aiomqtt.Will(topic=f"{Const.MQTT_SERVICE_PREFIX}/availability", payload="offline", retain=True),
                )

                # Use the client context manager for automatic connection handling
                async with client:
                    self.mqttc = client  # Store reference for publishing methods
                    await client.subscribe(f"{self.discovery_prefix}/light/{Const.MQTT_SERVICE_PREFIX}/#")
                    await client.publish(f"{Const.MQTT_SERVICE_PREFIX}/availability", "online", retain=True)
                    self.logger.info("Successfully connected to MQTT broker")

                    # Republish every device that is already bound to its bridge
                    for device in self.devices:
                        if device.bridge is not None:
                            await self.publish_device(device)

                    # Process messages
                    async for message in client.messages:
                        await self._mqtt_on_message(message)

            except asyncio.CancelledError:
                self.logger.info("MQTT message handler cancelled")
                break
            except aiomqtt.MqttError as e:
                self.mqttc = None
                self.logger.warning(f"MQTT connection lost: {e}")
                self.logger.info(f"Reconnecting in {interval} seconds...")
                await asyncio.sleep(interval)
                interval = Const.MQTT_RECONNECT_MIN_DELAY
            except Exception as e:
                self.mqttc = None
                self.logger.error(f"Unexpected error in MQTT message handler: {e}")
                self.logger.info(f"Retrying in {interval} seconds...")
                await asyncio.sleep(interval)
                # Exponential backoff for unexpected errors
                interval = min(interval * 2, Const.MQTT_RECONNECT_MAX_DELAY)

    async def _mqtt_on_message(self, msg: aiomqtt.Message) -> None:
        topic_str = str(msg.topic)

        # Only set commands are handled
        base_topic, _, command = topic_str.rpartition('/')
        if command != "set":
            return

        device = self.topic_device.get(base_topic)
        if device is None:
            self.logger.debug(f"No matching device found for {base_topic}")
            return
        if not self.setup_complete or device.bridge is None:
            self.logger.debug(f"{device.name} not ready, ignoring message {topic_str}")
            return

        try:
            payload = json.loads(msg.payload.decode('UTF-8') if msg.payload else "{}")
            capabilities = capabilities_from_payload(payload, has_saturation=device.has_capability("light_saturation"))
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            self.logger.error(f"Invalid payload for {base_topic}: {e}")
            return

        self.logger.debug(f"Command from HA: {device.name} {payload}")
        for capability in capabilities:
            try:
                await device.apply(capability)
            except MilightError as e:
                self.logger.error(f"{device.name}: {capability} failed: {e}")
        await self._publish_state(base_topic, state_from_device(device))

    # ================================
    #        MQTT PUBLISHING
    # ================================

    def _device_topic(self, device: MilightDevice) -> str:
        bridge_id = device.identity.mac.replace(":", "").replace("-", "").lower()
        target = f"{device.identity.driver_type.name.lower()}{device.identity.zone_number}"
        return f"{self.discovery_prefix}/light/{Const.MQTT_SERVICE_PREFIX}/{bridge_id}_{target}"

    def _availability_topic(self, device: MilightDevice) -> str:
        bridge_id = device.identity.mac.replace(":", "").replace("-", "").lower()
        return f"{Const.MQTT_SERVICE_PREFIX}/{bridge_id}/availability"

    def device_config(self, device: MilightDevice) -> dict[str, Any]:
        mqtt_topic = self._device_topic(device)
        unique_id = mqtt_topic.rsplit('/', 1)[-1]
        config = self.global_config | {
            "name": self.device_labels.get(device, device.name),
            "unique_id": unique_id,
            "default_entity_id": f"light.milight_{unique_id}",
            "schema": "json",
            "command_topic": f"{mqtt_topic}/set",
            "state_topic": f"{mqtt_topic}/state",
            "availability": [
                {"topic": f"{Const.MQTT_SERVICE_PREFIX}/availability"},
                {"topic": self._availability_topic(device)},
            ],
            "availability_mode": "all",
            "brightness": True,
            "supported_color_modes": supported_color_modes(device.identity.driver_type),
            "device": {
                "manufacturer": "Milight",
                "identifiers": f"milight-{device.identity.mac}",
                "name": f"Milight bridge {device.identity.mac}",
            },
            "retain": False,
        }
        if "color_temp" in config["supported_color_modes"]:
            config["min_mireds"] = Const.MIREDS_COOL
            config["max_mireds"] = Const.MIREDS_WARM
        if device.has_capability("scene"):
            config["effect"] = True
            config["effect_list"] = Const.EFFECTS
        return config

    async def publish_device(self, device: MilightDevice) -> None:
        mqtt_topic = self._device_topic(device)
        self.topic_device[mqtt_topic] = device
        await self.mqttc.publish(f"{mqtt_topic}/config", json.dumps(self.device_config(device)), retain=True)
        await self.mqttc.publish(self._availability_topic(device), "online" if device.available else "offline", retain=True)

    async def _publish_state(self, topic: str, state: dict[str, Any]) -> None:
        if self.mqttc is None:
            return
        await self.mqttc.publish(f"{topic}/state", json.dumps(state))
        self.logger.debug(f"MQTT sent - {topic}/state: {state}")


# Usage
async def _main() -> None:
    bridge = MilightMQTTBridge(sys.argv[1] if len(sys.argv) > 1 else "config.yaml")
    try:
        await bridge.run()
    finally:
        if hasattr(bridge, 'manager'):
            await bridge.stop()


def main() -> None:
    setup_signal_handlers()
    run_with_keyboard_interrupt(_main)


if __name__ == "__main__":
    main()
