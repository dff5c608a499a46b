"""
Control-endpoint providers.

Trainers expose their control point under different services depending on
vendor and firmware. Each provider knows one (service, characteristic)
location and how to encode commands for it; the probes are tried in
priority order and the first match wins.
"""

import logging
from typing import Any, Optional

from .core import (
    CYCLING_POWER_SERVICE_UUID,
    FTMS_CONTROL_POINT_UUID,
    FTMS_SERVICE_UUID,
    OP_FTMS_REQUEST_CONTROL,
    OP_WAHOO_INIT,
    TrainerSettings,
    WAHOO_CONTROL_POINT_UUID,
    WAHOO_SERVICE_UUID,
)
from .protocol import (
    encode_ftms_resistance,
    encode_ftms_simulation,
    encode_opcode,
    encode_resistance_mode,
    encode_simulation_grade,
)
from .transmission import ResistanceCommand

logger = logging.getLogger(__name__)


class ControlEndpoint:
    """Base provider: where the control point lives and what to send it."""

    name = "generic"
    service_uuid = ""
    characteristic_uuid = ""

    def init_command(self) -> bytes:
        raise NotImplementedError

    def encode(self, command: ResistanceCommand, settings: TrainerSettings) -> bytes:
        raise NotImplementedError

    def probe(self, services: Any) -> Any:
        """Return the control characteristic if this provider matches.

        Args:
            services: GATT service collection (bleak BleakGATTServiceCollection)
        """
        service = services.get_service(self.service_uuid)
        if service is None:
            return None
        return service.get_characteristic(self.characteristic_uuid)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class WahooEndpoint(ControlEndpoint):
    """Wahoo vendor control point (resistance and simulation op-codes)."""

    name = "wahoo"
    service_uuid = WAHOO_SERVICE_UUID
    characteristic_uuid = WAHOO_CONTROL_POINT_UUID

    def init_command(self) -> bytes:
        return encode_opcode(OP_WAHOO_INIT)

    def encode(self, command: ResistanceCommand, settings: TrainerSettings) -> bytes:
        if settings.use_simulation_mode and command.target_grade_percent is not None:
            return encode_simulation_grade(
                command.target_grade_percent, weight_kg=settings.rider_weight_kg
            )
        return encode_resistance_mode(command.resistance_fraction)


class WahooPowerServiceEndpoint(WahooEndpoint):
    """Wahoo control point published inside the Cycling Power service."""

    name = "wahoo-power"
    service_uuid = CYCLING_POWER_SERVICE_UUID


class FtmsEndpoint(ControlEndpoint):
    """Standard Fitness Machine Service control point."""

    name = "ftms"
    service_uuid = FTMS_SERVICE_UUID
    characteristic_uuid = FTMS_CONTROL_POINT_UUID

    def init_command(self) -> bytes:
        return encode_opcode(OP_FTMS_REQUEST_CONTROL)

    def encode(self, command: ResistanceCommand, settings: TrainerSettings) -> bytes:
        if settings.use_simulation_mode and command.target_grade_percent is not None:
            return encode_ftms_simulation(command.target_grade_percent)
        return encode_ftms_resistance(command.resistance_fraction)


# Priority order: vendor control point first, then the standard one
ENDPOINT_PROBES: tuple[ControlEndpoint, ...] = (
    WahooEndpoint(),
    WahooPowerServiceEndpoint(),
    FtmsEndpoint(),
)


def find_control_endpoint(
    services: Any, probes: tuple[ControlEndpoint, ...] = ENDPOINT_PROBES
) -> tuple[Optional[ControlEndpoint], Any]:
    """Find the first provider whose control point exists.

    Returns:
        (provider, characteristic), or (None, None) if nothing matched
    """
    for provider in probes:
        characteristic = provider.probe(services)
        if characteristic is not None:
            logger.info(f"Found control point via {provider.name} ({provider.service_uuid})")
            return provider, characteristic
    return None, None
