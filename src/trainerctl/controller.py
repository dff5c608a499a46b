"""
Async link service for smart trainers over Bluetooth LE.

This module owns the bleak connection: scanning, connecting, telemetry
subscriptions, the control-point command loop and the events the REPL and
workout session listen to.
"""

import asyncio
import json
import logging
import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from .core import (
    CSC_MEASUREMENT_UUID,
    CSC_SERVICE_UUID,
    CYCLING_POWER_SERVICE_UUID,
    FTMS_SERVICE_UUID,
    HEART_RATE_MEASUREMENT_UUID,
    HEART_RATE_SERVICE_UUID,
    POWER_MEASUREMENT_UUID,
    TRAINER_NAME_HINTS,
    TrainerSettings,
)
from .endpoints import ControlEndpoint, find_control_endpoint
from .protocol import (
    decode_crank_from_csc,
    decode_crank_from_power,
    decode_heart_rate,
    decode_power,
    decode_wheel_from_csc,
    decode_wheel_from_power,
)
from .resistance import grade_to_resistance
from .telemetry import CrankAccumulator, WheelAccumulator
from .transmission import CommandTransmitter, ResistanceCommand

logger = logging.getLogger(__name__)

LINK_ERRORS = (BleakError, asyncio.TimeoutError, OSError)


@dataclass(frozen=True)
class DiscoveredTrainer:
    name: str
    address: str
    rssi: int = 0


class TrainerController:
    """Manages connection and control of a smart bike trainer."""

    SCAN_TIMEOUT = 10.0
    CONNECT_TIMEOUT = 10.0

    @classmethod
    def _get_cache_file(cls) -> Path:
        """Get the standard cache file location for device address."""
        # Check XDG_CACHE_HOME first (Linux/Unix standard)
        cache_dir = os.environ.get("XDG_CACHE_HOME")
        if cache_dir:
            cache_path = Path(cache_dir) / "trainerctl"
        else:
            system = platform.system()
            if system == "Darwin":  # macOS
                cache_path = Path.home() / "Library" / "Caches" / "trainerctl"
            elif system == "Windows":
                local_appdata = os.environ.get("LOCALAPPDATA")
                if local_appdata:
                    cache_path = Path(local_appdata) / "trainerctl"
                else:
                    appdata = os.environ.get(
                        "APPDATA", str(Path.home() / "AppData" / "Roaming")
                    )
                    cache_path = Path(appdata) / "trainerctl"
            else:  # Linux/Unix fallback
                cache_path = Path.home() / ".cache" / "trainerctl"

        cache_path.mkdir(parents=True, exist_ok=True)
        return cache_path / "device_address.json"

    def __init__(self, settings: Optional[TrainerSettings] = None) -> None:
        """Initialize controller with no device connection.

        Args:
            settings: Wheel size, units and control mode (defaults if None)
        """
        self.settings = settings or TrainerSettings()
        self._client: Optional[BleakClient] = None
        self._scanner: Optional[BleakScanner] = None
        self._endpoint: Optional[ControlEndpoint] = None
        self._control_point: Any = None
        self._notify_chars: list[Any] = []
        self._transmitter: Optional[CommandTransmitter] = None
        self._update_queue: asyncio.Queue = asyncio.Queue(maxsize=10)
        self._is_running = False
        self._disconnecting = False
        self._discovered: dict[str, DiscoveredTrainer] = {}
        self.current_status = "Ready"

        # Telemetry state
        self._wheel = WheelAccumulator(self.settings.wheel_circumference_m)
        self._crank = CrankAccumulator()
        self._wheel_source: Optional[str] = None
        self._crank_source: Optional[str] = None
        self._latest: dict[str, Any] = {}
        self._reset_latest()

        # Callbacks
        self._on_device_discovered: Optional[Callable] = None
        self._on_status: Optional[Callable] = None
        self._on_power: Optional[Callable] = None
        self._on_speed: Optional[Callable] = None
        self._on_cadence: Optional[Callable] = None
        self._on_heart_rate: Optional[Callable] = None
        self._on_connection_lost: Optional[Callable] = None

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to device."""
        return self._client is not None and self._client.is_connected

    @property
    def is_scanning(self) -> bool:
        return self._scanner is not None

    @property
    def has_control(self) -> bool:
        """True when a control point was found on the connected trainer."""
        return self._endpoint is not None and self._transmitter is not None

    @property
    def endpoint_name(self) -> Optional[str]:
        return self._endpoint.name if self._endpoint else None

    @property
    def device_name(self) -> str:
        if self._client is None:
            return "Trainer"
        return getattr(self._client, "name", None) or self._client.address

    @property
    def pending_command(self) -> Optional[ResistanceCommand]:
        if self._transmitter is None:
            return None
        return self._transmitter.pending

    @property
    def discovered_trainers(self) -> list[DiscoveredTrainer]:
        return list(self._discovered.values())

    # ========== Callbacks ==========

    def set_on_device_discovered(self, callback: Callable) -> None:
        """Set callback for trainers found while scanning.

        Args:
            callback: Function called with a DiscoveredTrainer
        """
        self._on_device_discovered = callback

    def set_on_status(self, callback: Callable) -> None:
        """Set callback for status text changes."""
        self._on_status = callback

    def set_on_power(self, callback: Callable) -> None:
        """Set callback for power readings in watts."""
        self._on_power = callback

    def set_on_speed(self, callback: Callable) -> None:
        """Set callback for speed updates.

        Args:
            callback: Function called with (speed km/h, session distance m)
        """
        self._on_speed = callback

    def set_on_cadence(self, callback: Callable) -> None:
        self._on_cadence = callback

    def set_on_heart_rate(self, callback: Callable) -> None:
        self._on_heart_rate = callback

    def set_on_connection_lost(self, callback: Callable) -> None:
        """Set callback for unexpected disconnects."""
        self._on_connection_lost = callback

    def _emit(self, callback: Optional[Callable], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Callback error: {e}")

    def _update_status(self, status: str) -> None:
        self.current_status = status
        logger.info(f"[BT] {status}")
        self._emit(self._on_status, status)

    def _push_update(self, data: dict) -> None:
        self._latest.update(data)
        try:
            if self._is_running:
                self._update_queue.put_nowait(data)
        except asyncio.QueueFull:
            # Drop if backed up - live display can skip a frame
            pass

    # ========== Address cache ==========

    def _load_cached_address(self) -> str | None:
        """Load cached device address from file.

        Returns:
            Cached address string if available, None otherwise
        """
        try:
            cache_file = self._get_cache_file()
            if cache_file.exists():
                with open(cache_file, "r") as f:
                    data = json.load(f)
                    return data.get("address")
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load cached address: {e}")
        return None

    def _save_cached_address(self, address: str) -> None:
        try:
            cache_file = self._get_cache_file()
            with open(cache_file, "w") as f:
                json.dump({"address": address}, f, indent=2)
            logger.info(f"Cached device address: {address}")
        except OSError as e:
            logger.warning(f"Failed to save cached address: {e}")

    def clear_address_cache(self) -> None:
        """Clear the cached device address.

        This will force rediscovery on next connection attempt.
        """
        try:
            cache_file = self._get_cache_file()
            if cache_file.exists():
                cache_file.unlink()
                logger.info("Cleared cached device address")
        except OSError as e:
            logger.warning(f"Failed to clear cached address: {e}")

    # ========== Discovery ==========

    def _on_advertisement(self, device: Any, advertisement: Any) -> None:
        """Scanner detection callback; reports each matching trainer once."""
        name = getattr(advertisement, "local_name", None) or device.name or ""
        service_uuids = [u.lower() for u in getattr(advertisement, "service_uuids", None) or []]

        is_trainer = any(hint in name.upper() for hint in TRAINER_NAME_HINTS)
        if not is_trainer and FTMS_SERVICE_UUID not in service_uuids:
            return
        if device.address in self._discovered:
            return

        trainer = DiscoveredTrainer(
            name=name or "Unknown",
            address=device.address,
            rssi=getattr(advertisement, "rssi", 0) or 0,
        )
        self._discovered[device.address] = trainer
        logger.info(f"Found trainer: {trainer.name} ({trainer.address})")
        self._emit(self._on_device_discovered, trainer)

    async def start_scanning(self) -> bool:
        """Start a background scan for trainers."""
        if self._scanner is not None:
            await self.stop_scanning()

        self._discovered.clear()
        try:
            self._scanner = BleakScanner(detection_callback=self._on_advertisement)
            await self._scanner.start()
        except LINK_ERRORS as e:
            self._scanner = None
            self._update_status(f"Scan failed: {e}")
            return False
        self._update_status("Scanning for trainers...")
        return True

    async def stop_scanning(self) -> None:
        if self._scanner is None:
            return
        scanner, self._scanner = self._scanner, None
        try:
            await scanner.stop()
        except LINK_ERRORS as e:
            logger.warning(f"Stop scanning failed: {e}")
        self._update_status("Scanning stopped.")

    async def discover(self, timeout: float = SCAN_TIMEOUT) -> list[DiscoveredTrainer]:
        """Scan for a fixed time and return the trainers found."""
        if not await self.start_scanning():
            return []
        try:
            await asyncio.sleep(timeout)
        finally:
            await self.stop_scanning()

        trainers = self.discovered_trainers
        if not trainers:
            logger.warning("No trainers found")
        return trainers

    # ========== Connection ==========

    async def connect(self, address: Optional[str] = None) -> bool:
        """Connect to a trainer.

        Uses the given address. Without one, tries the cached address first,
        then falls back to the first trainer found by scanning.

        Returns:
            True if connected successfully, False otherwise
        """
        if self.is_connected:
            logger.warning("Already connected")
            return True

        if address is not None:
            return await self._connect_address(address)

        # First try cached address
        cached_address = self._load_cached_address()
        if cached_address:
            logger.info(f"Trying cached address: {cached_address}")
            if await self._connect_address(cached_address):
                return True
            logger.warning(f"Cached address failed: {cached_address}")

        # Fall back to scanning
        logger.info("Scanning for trainer...")
        trainers = await self.discover()
        if not trainers:
            self._update_status("No trainer found")
            return False
        return await self._connect_address(trainers[0].address)

    async def _connect_address(self, address: str) -> bool:
        await self.stop_scanning()
        self._update_status(f"Connecting to {address}...")
        self._reset_telemetry()

        client = BleakClient(
            address,
            disconnected_callback=self._on_device_disconnect,
            timeout=self.CONNECT_TIMEOUT,
        )
        try:
            await client.connect()
        except LINK_ERRORS as e:
            self._update_status(f"Connection error: {e}")
            return False

        self._client = client
        self._disconnecting = False
        self._is_running = True

        services = client.services
        self._endpoint, self._control_point = find_control_endpoint(services)
        if self._endpoint is None:
            logger.warning("Control point not found; telemetry only")
        else:
            self._transmitter = CommandTransmitter(self._write_control, self._encode_command)
            self._transmitter.start()

        await self._subscribe(services)
        self._save_cached_address(address)
        self._update_status("Connected")
        return True

    async def _subscribe(self, services: Any) -> None:
        """Enable notifications for every telemetry characteristic present."""
        subscriptions = (
            (CYCLING_POWER_SERVICE_UUID, POWER_MEASUREMENT_UUID, self.handle_power_measurement),
            (CSC_SERVICE_UUID, CSC_MEASUREMENT_UUID, self.handle_csc_measurement),
            (HEART_RATE_SERVICE_UUID, HEART_RATE_MEASUREMENT_UUID, self.handle_heart_rate_measurement),
        )
        self._notify_chars = []
        for service_uuid, char_uuid, handler in subscriptions:
            service = services.get_service(service_uuid)
            characteristic = service.get_characteristic(char_uuid) if service else None
            if characteristic is None:
                logger.debug(f"Characteristic {char_uuid} not present")
                continue
            try:
                await self._client.start_notify(  # type: ignore[union-attr]
                    characteristic,
                    lambda _sender, data, handler=handler: handler(bytes(data)),
                )
                self._notify_chars.append(characteristic)
                logger.info(f"Subscribed to {char_uuid}")
            except LINK_ERRORS as e:
                logger.warning(f"Failed to subscribe to {char_uuid}: {e}")

    async def disconnect(self) -> None:
        """Disconnect from device."""
        if self._client is None:
            return

        logger.info("Disconnecting...")
        self._disconnecting = True
        self._is_running = False
        if self._transmitter is not None:
            await self._transmitter.aclose()
            self._transmitter = None

        client = self._client
        for characteristic in self._notify_chars:
            try:
                await client.stop_notify(characteristic)
            except LINK_ERRORS as e:
                logger.debug(f"Stop notify failed: {e}")
        self._notify_chars = []

        try:
            await client.disconnect()
        except LINK_ERRORS as e:
            logger.error(f"Disconnect failed: {e}")

        self._client = None
        self._endpoint = None
        self._control_point = None
        self._update_status("Disconnected")

    def _on_device_disconnect(self, client: Any) -> None:
        """Handle device disconnect.

        Stops the command loop and drops the pending command before
        notifying listeners.
        """
        if self._transmitter is not None:
            self._transmitter.stop()
            self._transmitter = None
        self._is_running = False
        if self._disconnecting:
            return

        logger.warning("Device disconnected")
        self._client = None
        self._endpoint = None
        self._control_point = None
        self._update_status("Device Disconnected")
        self._emit(self._on_connection_lost)

    # ========== Commands ==========

    def _encode_command(self, command: ResistanceCommand) -> bytes:
        if self._endpoint is None:
            raise ValueError("No control endpoint")
        return self._endpoint.encode(command, self.settings)

    async def _write_control(self, data: bytes) -> bool:
        """Write one buffer to the control point.

        Returns:
            True on success, False on any link error
        """
        if not self.is_connected or self._control_point is None:
            return False
        try:
            await self._client.write_gatt_char(  # type: ignore[union-attr]
                self._control_point, data, response=True
            )
            logger.debug(f"[TX] {data.hex('-')}")
            return True
        except LINK_ERRORS as e:
            logger.warning(f"Write error: {e}")
            return False

    def _queue(self, command: ResistanceCommand) -> bool:
        if self._transmitter is None:
            logger.warning("No control point; command dropped")
            return False
        self._transmitter.queue(command)
        self._latest["resistance"] = command.resistance_fraction
        if command.target_grade_percent is not None:
            self._latest["grade"] = command.target_grade_percent
        return True

    def queue_resistance(self, fraction: float) -> bool:
        """Queue a resistance fraction (0-1), replacing any unsent one."""
        return self._queue(ResistanceCommand(fraction))

    def queue_grade(self, grade_percent: float) -> bool:
        """Queue a grade; converted to resistance by the calibration table."""
        return self._queue(
            ResistanceCommand(grade_to_resistance(grade_percent), grade_percent)
        )

    async def send_init_command(self) -> bool:
        """Send the endpoint's init/unlock command once, outside the loop."""
        if self._endpoint is None:
            logger.error("Not connected")
            return False
        success = await self._write_control(self._endpoint.init_command())
        logger.info(f"Init command {'sent' if success else 'failed'}")
        return success

    # ========== Telemetry ==========

    def set_wheel_circumference(self, circumference_m: float) -> None:
        """Change wheel size without resetting session distance."""
        self.settings.wheel_circumference_m = circumference_m
        self._wheel.circumference_m = circumference_m

    def _reset_latest(self) -> None:
        self._latest = {
            "power": 0,
            "cadence": 0.0,
            "speed": 0.0,
            "distance": 0.0,
            "heart_rate": None,
            "grade": None,
            "resistance": None,
        }

    def _reset_telemetry(self) -> None:
        self._wheel.reset()
        self._crank.reset()
        self._wheel_source = None
        self._crank_source = None
        self._reset_latest()

    def _feed_wheel(self, source: str, reading: Any) -> None:
        if reading is None:
            return
        if self._wheel_source is None:
            self._wheel_source = source
        elif self._wheel_source != source:
            return

        sample = self._wheel.update(reading.wheel_revolutions, reading.wheel_event_time)
        if sample is None:
            return
        self._push_update({"speed": sample.speed_kph, "distance": sample.distance_m})
        self._emit(self._on_speed, sample.speed_kph, sample.distance_m)

    def _feed_crank(self, source: str, reading: Any) -> None:
        if reading is None:
            return
        if self._crank_source is None:
            self._crank_source = source
        elif self._crank_source != source:
            return

        sample = self._crank.update(reading.crank_revolutions, reading.crank_event_time)
        if sample is None:
            return
        self._push_update({"cadence": sample.rpm})
        self._emit(self._on_cadence, sample.rpm)

    def handle_power_measurement(self, data: bytes) -> None:
        """Decode a Cycling Power Measurement notification."""
        watts = decode_power(data)
        self._push_update({"power": watts})
        self._emit(self._on_power, watts)

        self._feed_wheel("power", decode_wheel_from_power(data))
        self._feed_crank("power", decode_crank_from_power(data))

    def handle_csc_measurement(self, data: bytes) -> None:
        """Decode a CSC Measurement notification."""
        self._feed_wheel("csc", decode_wheel_from_csc(data))
        self._feed_crank("csc", decode_crank_from_csc(data))

    def handle_heart_rate_measurement(self, data: bytes) -> None:
        reading = decode_heart_rate(data)
        if reading is None or reading.bpm == 0:
            return
        self._push_update({"heart_rate": reading.bpm})
        self._emit(self._on_heart_rate, reading.bpm)

    def get_status(self) -> dict:
        """Get current sensor values without waiting for update.

        Returns:
            Dictionary with status and the latest telemetry values
        """
        status = dict(self._latest)
        status["status"] = "CONNECTED" if self.is_connected else "DISCONNECTED"
        status["endpoint"] = self.endpoint_name
        return status

    async def get_updates(self) -> AsyncGenerator[dict, None]:
        """Async generator that yields telemetry updates.

        Yields:
            Partial status dicts as notifications arrive
        """
        while self._is_running:
            try:
                data = await asyncio.wait_for(
                    self._update_queue.get(),
                    timeout=0.5,
                )
                yield data
            except asyncio.TimeoutError:
                # Continue - trainer may be idle
                continue
