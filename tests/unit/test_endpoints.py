"""Control point discovery and per-endpoint encoding."""

import struct

from trainerctl.core import (
    CYCLING_POWER_SERVICE_UUID,
    FTMS_CONTROL_POINT_UUID,
    FTMS_SERVICE_UUID,
    TrainerSettings,
    WAHOO_CONTROL_POINT_UUID,
    WAHOO_SERVICE_UUID,
)
from trainerctl.endpoints import (
    FtmsEndpoint,
    WahooEndpoint,
    WahooPowerServiceEndpoint,
    find_control_endpoint,
)
from trainerctl.transmission import ResistanceCommand


class FakeService:
    def __init__(self, characteristics):
        self.characteristics = characteristics

    def get_characteristic(self, uuid):
        return self.characteristics.get(uuid)


class FakeServices:
    """Stands in for bleak's service collection."""

    def __init__(self, layout):
        self.services = {
            service: FakeService({uuid: f"char:{uuid}" for uuid in chars})
            for service, chars in layout.items()
        }

    def get_service(self, uuid):
        return self.services.get(uuid)


def test_wahoo_service_wins():
    services = FakeServices(
        {
            WAHOO_SERVICE_UUID: [WAHOO_CONTROL_POINT_UUID],
            FTMS_SERVICE_UUID: [FTMS_CONTROL_POINT_UUID],
        }
    )
    provider, characteristic = find_control_endpoint(services)
    assert isinstance(provider, WahooEndpoint)
    assert characteristic == f"char:{WAHOO_CONTROL_POINT_UUID}"


def test_wahoo_inside_power_service():
    services = FakeServices({CYCLING_POWER_SERVICE_UUID: [WAHOO_CONTROL_POINT_UUID]})
    provider, _ = find_control_endpoint(services)
    assert isinstance(provider, WahooPowerServiceEndpoint)


def test_ftms_fallback():
    services = FakeServices(
        {
            CYCLING_POWER_SERVICE_UUID: [],
            FTMS_SERVICE_UUID: [FTMS_CONTROL_POINT_UUID],
        }
    )
    provider, _ = find_control_endpoint(services)
    assert isinstance(provider, FtmsEndpoint)


def test_no_control_point():
    assert find_control_endpoint(FakeServices({})) == (None, None)


def test_wahoo_encoding():
    endpoint = WahooEndpoint()
    command = ResistanceCommand(0.09, 5.0)
    assert endpoint.init_command() == bytes([0x00])
    assert endpoint.encode(command, TrainerSettings()) == bytes([0x41, 9])

    payload = endpoint.encode(command, TrainerSettings(use_simulation_mode=True, rider_weight_kg=70))
    assert struct.unpack("<BHHHh", payload) == (0x43, 7000, 40, 600, 500)

    # Plain resistance stays in resistance mode even in simulation mode
    plain = ResistanceCommand(0.5)
    assert endpoint.encode(plain, TrainerSettings(use_simulation_mode=True)) == bytes([0x41, 50])


def test_ftms_encoding():
    endpoint = FtmsEndpoint()
    command = ResistanceCommand(0.2, -2.0)
    assert endpoint.init_command() == bytes([0x00])
    assert endpoint.encode(command, TrainerSettings()) == bytes([0x04, 20])
    payload = endpoint.encode(command, TrainerSettings(use_simulation_mode=True))
    assert payload[0] == 0x11
    assert struct.unpack_from("<h", payload, 3) == (-200,)
