"""Condition record parsing and conversion of raw samples to voltages."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Zero line of the 8-bit sample data.
SAMPLE_ZERO = 128.0
# Sample counts per vertical division and per horizontal division.
COUNTS_PER_VOLT_DIVISION = 25.0
SAMPLES_PER_TIME_DIVISION = 100.0

CONDITION_MIN_FIELDS = 12
TIME_SCALE_FIELD = 3
VOLTAGE_SCALE_FIELD = 7

UNIT_PATTERN = re.compile(r"(?P<value>[0-9]{1,3}|0\.[0-9]{1,2})(?P<unit>mV|V|uV|s|ms|us)")
UNIT_MULTIPLIERS = {
    "s": 1.0,
    "V": 1.0,
    "ms": 1e3,
    "mV": 1e3,
    "us": 1e6,
    "uV": 1e6,
}


@dataclass(frozen=True)
class ValueUnitPair:
    """A scale token such as ``5mV``: value per division and its unit."""

    value: float = 0.0
    unit_mult: float = 0.0
    unit_name: str = ""

    def __str__(self) -> str:
        return f"{self.value:g} {self.unit_name}"


def parse_unit(text: str) -> Optional[ValueUnitPair]:
    match = UNIT_PATTERN.search(text)
    if match is None:
        return None
    try:
        value = float(match.group("value"))
    except ValueError:
        return None
    unit_name = match.group("unit")
    return ValueUnitPair(value=value, unit_mult=UNIT_MULTIPLIERS[unit_name], unit_name=unit_name)


def get_scale_units(condition_string: str) -> Optional[Tuple[ValueUnitPair, ValueUnitPair]]:
    """
    Extract the time/div and volts/div tokens from an Ro condition record.

    Returns ``None`` when the record has fewer than 12 fields or either
    token does not parse. An empty channel carries neither token.
    """
    segments = condition_string.split(",")
    if len(segments) < CONDITION_MIN_FIELDS:
        logger.debug("Condition record has %d fields, need %d", len(segments), CONDITION_MIN_FIELDS)
        return None
    time_unit = parse_unit(segments[TIME_SCALE_FIELD])
    if time_unit is None:
        return None
    voltage_unit = parse_unit(segments[VOLTAGE_SCALE_FIELD])
    if voltage_unit is None:
        logger.debug("Voltage scale missing from condition record: %r", segments[VOLTAGE_SCALE_FIELD])
        return None
    return time_unit, voltage_unit


def scale_time(index: int | np.ndarray, time_per_division: float, scale_factor: float = 1.0) -> float | np.ndarray:
    return ((time_per_division / SAMPLES_PER_TIME_DIVISION) * index) * scale_factor


def scale_waveform_data(
    raw: bytes | bytearray | Sequence[int],
    voltage_per_division: float,
    scale_factor: float = 1.0,
) -> np.ndarray:
    """Convert unsigned sample bytes to volts-per-division units, one output per input."""
    counts = np.asarray(bytearray(raw), dtype=float)
    corrected = -(counts - SAMPLE_ZERO)
    return (corrected * (voltage_per_division / COUNTS_PER_VOLT_DIVISION)) * scale_factor


def unit_scale(samples: Sequence[float] | np.ndarray, voltage_unit: ValueUnitPair) -> np.ndarray:
    return np.asarray(samples, dtype=float) * voltage_unit.unit_mult


def make_rectangle(
    voltage_per_division: float,
    amplitude: float,
    time_per_division: float,
    period: float,
    count: int = 1000,
) -> np.ndarray:
    # time_per_division is accepted for call symmetry with the resamplers; the shape is index based
    x = np.arange(1, count + 1, dtype=float)
    return np.floor(np.sin(x / (32.0 * period))) * voltage_per_division * amplitude * 2.0
