from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .channels import Channel
from .interpolation import Kernel

BAUD_RATES = (300, 600, 1200, 2400, 4800, 9600)
STOP_BITS = (1, 2)
# Inactivity timeout of a serial read, seconds.
READ_TIMEOUT = 2.0


@dataclass(frozen=True)
class PortSettings:
    name: str = "/dev/ttyUSB0"
    baudrate: int = 9600
    stop_bits: int = 1
    timeout: float = READ_TIMEOUT

    def __post_init__(self) -> None:
        if self.baudrate not in BAUD_RATES:
            raise ValueError(f"Unsupported baudrate {self.baudrate}. Expected one of {list(BAUD_RATES)}")
        if self.stop_bits not in STOP_BITS:
            raise ValueError(f"Unsupported stop bit count {self.stop_bits}. Expected 1 or 2")


@dataclass(frozen=True)
class DisplaySettings:
    points: int = 1000
    step: int = 2
    kernel: str = "linear"
    prepass_step: int = 1
    # Linear pre-pass length; None means twice the captured sample count.
    prepass_points: Optional[int] = None
    average_window: int = 3

    def __post_init__(self) -> None:
        Kernel.parse(self.kernel)
        if self.points <= 8:
            raise ValueError(f"display.points must be greater than 8, got {self.points}")
        if self.prepass_points is not None and self.prepass_points <= 8:
            raise ValueError(f"display.prepass_points must be greater than 8, got {self.prepass_points}")
        if self.step < 1:
            raise ValueError(f"display.step must be >= 1, got {self.step}")
        if self.prepass_step < 1:
            raise ValueError(f"display.prepass_step must be >= 1, got {self.prepass_step}")
        if not 1 <= self.average_window <= self.points:
            raise ValueError(
                f"display.average_window must be between 1 and display.points ({self.points}), "
                f"got {self.average_window}"
            )

    @property
    def kernel_enum(self) -> Kernel:
        return Kernel.parse(self.kernel)


@dataclass(frozen=True)
class HostConfig:
    port: PortSettings = field(default_factory=PortSettings)
    channel: Channel = Channel.DISPLAY1
    display: DisplaySettings = field(default_factory=DisplaySettings)


class Command(str, enum.Enum):
    TEST = "test"
    CONDITIONS = "conditions"
    WAVEFORM = "waveform"


@dataclass(frozen=True)
class CaptureConfig:
    """
    Snapshot of what the capture worker should do next.

    The foreground never edits a snapshot it has handed over; it builds a new
    one with ``dataclasses.replace`` and pushes that instead. Holding a single
    ``command`` keeps test/conditions/waveform mutually exclusive.
    """

    open_port: bool = False
    do_capture: bool = False
    command: Command = Command.WAVEFORM
    port: PortSettings = field(default_factory=PortSettings)
    channel: Channel = Channel.DISPLAY1

    @classmethod
    def from_host_config(cls, config: HostConfig, command: Command = Command.WAVEFORM) -> "CaptureConfig":
        return cls(open_port=True, do_capture=True, command=command, port=config.port, channel=config.channel)


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> HostConfig:
    """
    Load host settings from JSON and apply CLI-style overrides.

    Overrides are dotted `key=value` pairs, e.g.:
        ["port.baudrate=4800", "display.kernel=catmull_rom", "channel=save1"]
    """
    data: Dict[str, Any] = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)
    port_data = merged.get("port") or {}
    display_data = merged.get("display") or {}
    display = DisplaySettings(
        points=int(display_data.get("points", 1000)),
        step=int(display_data.get("step", 2)),
        kernel=str(display_data.get("kernel", "linear")),
        prepass_step=int(display_data.get("prepass_step", 1)),
        prepass_points=_optional_int(display_data.get("prepass_points")),
        average_window=int(display_data.get("average_window", 3)),
    )
    return HostConfig(
        port=PortSettings(
            name=str(port_data.get("name", "/dev/ttyUSB0")),
            baudrate=int(port_data.get("baudrate", 9600)),
            stop_bits=int(port_data.get("stop_bits", 1)),
            timeout=float(port_data.get("timeout", READ_TIMEOUT)),
        ),
        channel=Channel.parse(merged.get("channel", 1)),
        display=display,
    )


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    value = _coerce_value(raw_value.strip())
    return key, value


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        return raw


def _optional_int(value: Any) -> Optional[int]:
    if value is None or (isinstance(value, str) and value.lower() in {"", "none", "auto"}):
        return None
    return int(value)


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value


def override_from_option(key: str, value: Optional[Any]) -> list[str]:
    """Turn an optional CLI option into a dotted override, or nothing when unset."""
    if value is None:
        return []
    return [f"{key}={value}"]
