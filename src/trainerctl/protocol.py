"""
Byte-level codec for trainer control commands and sensor telemetry.

Builds the command buffers written to the trainer control point and decodes
the notification payloads of the Cycling Power, Cycling Speed and Cadence
and Heart Rate characteristics. All multi-byte fields are little-endian.
Decoders never raise on short or malformed frames: a field that cannot be
read is reported as absent (None).
"""

import struct
from dataclasses import dataclass
from typing import Optional

from .core import (
    OP_FTMS_SET_RESISTANCE,
    OP_FTMS_SIMULATION,
    OP_WAHOO_RESISTANCE,
    OP_WAHOO_SIMULATION,
)

# Cycling Power Measurement flag bits
POWER_FLAG_PEDAL_BALANCE = 0x01
POWER_FLAG_ACCUMULATED_TORQUE = 0x04
POWER_FLAG_WHEEL_DATA = 0x10
POWER_FLAG_CRANK_DATA = 0x20

# CSC Measurement flag bits
CSC_FLAG_WHEEL_DATA = 0x01
CSC_FLAG_CRANK_DATA = 0x02

WHEEL_DATA_SIZE = 6
CRANK_DATA_SIZE = 4


@dataclass(frozen=True)
class PowerReading:
    power_watts: int


@dataclass(frozen=True)
class WheelReading:
    wheel_revolutions: int
    wheel_event_time: int  # 1/1024 s ticks


@dataclass(frozen=True)
class CrankReading:
    crank_revolutions: int
    crank_event_time: int  # 1/1024 s ticks


@dataclass(frozen=True)
class HeartRateReading:
    bpm: int


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


# ========== Encoding ==========


def encode_opcode(code: int) -> bytes:
    """Build a command consisting of the op-code alone."""
    return struct.pack("<B", code)


def encode_opcode_u8(code: int, value: int) -> bytes:
    """Build ``[code, value]``.

    Raises:
        ValueError: If value does not fit in one byte
    """
    if not 0 <= value <= 0xFF:
        raise ValueError(f"Parameter {value} does not fit in uint8")
    return struct.pack("<BB", code, value)


def encode_opcode_u16(code: int, value: int) -> bytes:
    """Build ``[code, low_byte, high_byte]``.

    Raises:
        ValueError: If value does not fit in two bytes
    """
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"Parameter {value} does not fit in uint16")
    return struct.pack("<BH", code, value)


def encode_resistance_mode(fraction: float) -> bytes:
    """Wahoo resistance mode (0x41) with a 0-100 percent byte.

    Args:
        fraction: Resistance in [0, 1]; out-of-range values are clamped
    """
    percent = int(_clamp(round(fraction * 100), 0, 100))
    return encode_opcode_u8(OP_WAHOO_RESISTANCE, percent)


def encode_simulation_grade(
    grade_percent: float,
    weight_kg: float = 85.0,
    crr: float = 0.004,
    cw: float = 0.6,
) -> bytes:
    """Wahoo simulation mode (0x43) command.

    Layout: op-code, uint16 weight x100, uint16 crr x10000, uint16 cw x1000,
    int16 grade x100.
    """
    weight = round(_clamp(weight_kg, 0.0, 200.0) * 100)
    rolling = round(_clamp(crr, 0.0, 0.1) * 10000)
    wind = round(_clamp(cw, 0.0, 2.0) * 1000)
    grade = round(_clamp(grade_percent, -15.0, 20.0) * 100)
    return struct.pack("<BHHHh", OP_WAHOO_SIMULATION, weight, rolling, wind, grade)


def encode_ftms_simulation(
    grade_percent: float,
    crr: float = 0.004,
    cw: float = 0.51,
    wind_mps: float = 0.0,
) -> bytes:
    """FTMS Set Indoor Bike Simulation Parameters (0x11) command.

    Layout: op-code, int16 wind x1000, int16 grade x100, uint8 crr x10000,
    uint8 cw x100.
    """
    # 50 m/s at 0.001 resolution exceeds int16, so the scaled value saturates
    wind = int(_clamp(round(_clamp(wind_mps, -50.0, 50.0) * 1000), -0x8000, 0x7FFF))
    grade = round(_clamp(grade_percent, -45.0, 45.0) * 100)
    rolling = round(_clamp(crr, 0.0, 0.0254) * 10000)
    drag = round(_clamp(cw, 0.0, 2.54) * 100)
    return struct.pack("<BhhBB", OP_FTMS_SIMULATION, wind, grade, rolling, drag)


def encode_ftms_resistance(fraction: float) -> bytes:
    """FTMS Set Target Resistance Level (0x04) with a 0-100 percent byte."""
    percent = int(_clamp(round(fraction * 100), 0, 100))
    return encode_opcode_u8(OP_FTMS_SET_RESISTANCE, percent)


# ========== Decoding ==========


def decode_power(data: bytes) -> int:
    """Instantaneous power from a Cycling Power Measurement frame.

    Returns:
        Watts, never negative; 0 for frames shorter than 4 bytes
    """
    if len(data) < 4:
        return 0
    (watts,) = struct.unpack_from("<h", data, 2)
    return max(0, watts)


def _read_wheel(data: bytes, offset: int) -> Optional[WheelReading]:
    if offset + WHEEL_DATA_SIZE > len(data):
        return None
    revolutions, event_time = struct.unpack_from("<IH", data, offset)
    return WheelReading(revolutions, event_time)


def _read_crank(data: bytes, offset: int) -> Optional[CrankReading]:
    if offset + CRANK_DATA_SIZE > len(data):
        return None
    revolutions, event_time = struct.unpack_from("<HH", data, offset)
    return CrankReading(revolutions, event_time)


def decode_wheel_from_csc(data: bytes) -> Optional[WheelReading]:
    """Wheel revolution data from a CSC Measurement frame."""
    if len(data) < 1 or not data[0] & CSC_FLAG_WHEEL_DATA:
        return None
    return _read_wheel(data, 1)


def decode_crank_from_csc(data: bytes) -> Optional[CrankReading]:
    """Crank revolution data from a CSC Measurement frame."""
    if len(data) < 1 or not data[0] & CSC_FLAG_CRANK_DATA:
        return None
    offset = 1
    if data[0] & CSC_FLAG_WHEEL_DATA:
        offset += WHEEL_DATA_SIZE
    return _read_crank(data, offset)


def _power_frame_offsets(data: bytes) -> tuple[int, Optional[int], Optional[int]]:
    """Walk the power frame flags.

    Returns:
        (flags, wheel offset or None, crank offset or None)
    """
    (flags,) = struct.unpack_from("<H", data, 0)
    offset = 4  # flags + instantaneous power
    if flags & POWER_FLAG_PEDAL_BALANCE:
        offset += 1
    if flags & POWER_FLAG_ACCUMULATED_TORQUE:
        offset += 2
    wheel_offset = None
    if flags & POWER_FLAG_WHEEL_DATA:
        wheel_offset = offset
        offset += WHEEL_DATA_SIZE
    crank_offset = offset if flags & POWER_FLAG_CRANK_DATA else None
    return flags, wheel_offset, crank_offset


def decode_wheel_from_power(data: bytes) -> Optional[WheelReading]:
    """Wheel revolution data from a Cycling Power Measurement frame."""
    if len(data) < 4:
        return None
    _, wheel_offset, _ = _power_frame_offsets(data)
    if wheel_offset is None:
        return None
    return _read_wheel(data, wheel_offset)


def decode_crank_from_power(data: bytes) -> Optional[CrankReading]:
    """Crank revolution data from a Cycling Power Measurement frame."""
    if len(data) < 4:
        return None
    _, _, crank_offset = _power_frame_offsets(data)
    if crank_offset is None:
        return None
    return _read_crank(data, crank_offset)


def decode_heart_rate(data: bytes) -> Optional[HeartRateReading]:
    """Heart rate from a Heart Rate Measurement frame.

    Flag bit 0 selects a uint16 value instead of uint8.
    """
    if len(data) < 2:
        return None
    if data[0] & 0x01:
        if len(data) < 3:
            return None
        (bpm,) = struct.unpack_from("<H", data, 1)
    else:
        bpm = data[1]
    return HeartRateReading(bpm)
