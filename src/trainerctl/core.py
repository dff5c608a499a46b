"""
Core constants and settings for smart trainer control.
"""

from dataclasses import dataclass

# GATT services
WAHOO_SERVICE_UUID = "a026ee01-0a7d-4ab3-97fa-f1500f9feb8b"
CYCLING_POWER_SERVICE_UUID = "00001818-0000-1000-8000-00805f9b34fb"
CSC_SERVICE_UUID = "00001816-0000-1000-8000-00805f9b34fb"
FTMS_SERVICE_UUID = "00001826-0000-1000-8000-00805f9b34fb"
HEART_RATE_SERVICE_UUID = "0000180d-0000-1000-8000-00805f9b34fb"

# GATT characteristics
WAHOO_CONTROL_POINT_UUID = "a026e005-0a7d-4ab3-97fa-f1500f9feb8b"
FTMS_CONTROL_POINT_UUID = "00002ad9-0000-1000-8000-00805f9b34fb"
POWER_MEASUREMENT_UUID = "00002a63-0000-1000-8000-00805f9b34fb"
CSC_MEASUREMENT_UUID = "00002a5b-0000-1000-8000-00805f9b34fb"
HEART_RATE_MEASUREMENT_UUID = "00002a37-0000-1000-8000-00805f9b34fb"

# Advertised name fragments of supported trainers
TRAINER_NAME_HINTS = ("KICKR", "WAHOO")

# Wahoo op-codes
OP_WAHOO_INIT = 0x00
OP_WAHOO_RESISTANCE = 0x41
OP_WAHOO_SIMULATION = 0x43

# FTMS op-codes
OP_FTMS_REQUEST_CONTROL = 0x00
OP_FTMS_SET_RESISTANCE = 0x04
OP_FTMS_SIMULATION = 0x11

# Transmission loop pacing (seconds)
COMMAND_TICK_SECONDS = 0.2
COMMAND_BACKOFF_SECONDS = 2.0

# Workout pacing (seconds)
SAMPLE_INTERVAL_SECONDS = 1.0
DEFAULT_STEP_INTERVAL_SECONDS = 30
MIN_STEP_INTERVAL_SECONDS = 10
STEP_INTERVAL_INCREMENT = 10

# Grade slider range (%)
GRADE_MIN = -10.0
GRADE_MAX = 20.0

DEFAULT_WHEEL_CIRCUMFERENCE_M = 2.10
DEFAULT_RIDER_WEIGHT_KG = 85.0

KPH_TO_MPH = 0.621371


@dataclass(frozen=True)
class TireSize:
    """Named wheel size with its rolling circumference."""

    name: str
    circumference_m: float

    def __str__(self) -> str:
        return self.name


TIRE_SIZES = [
    TireSize("700c (Road)", 2.10),
    TireSize('26" (MTB)', 2.07),
    TireSize('27" (Touring)', 2.14),
    TireSize('29" (MTB)', 2.30),
]


@dataclass
class TrainerSettings:
    """Runtime settings handed to the controller and display.

    Attributes:
        wheel_circumference_m: Wheel circumference used for speed/distance
        use_metric: Show km/h and km instead of mph and miles
        use_simulation_mode: Send grade natively instead of mapped resistance
        rider_weight_kg: Rider weight for simulation-mode commands
    """

    wheel_circumference_m: float = DEFAULT_WHEEL_CIRCUMFERENCE_M
    use_metric: bool = False
    use_simulation_mode: bool = False
    rider_weight_kg: float = DEFAULT_RIDER_WEIGHT_KG


def find_tire_size(circumference_m: float) -> TireSize | None:
    """Return the preset matching a circumference, if any."""
    for tire in TIRE_SIZES:
        if abs(tire.circumference_m - circumference_m) < 0.01:
            return tire
    return None


# Application metadata
__version__ = "0.1.0"
__description__ = (
    "CLI and REPL interface for controlling smart bike trainers over Bluetooth"
)
