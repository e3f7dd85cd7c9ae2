"""
Host-side driver for the OS3000 oscilloscope.

The package talks to the instrument over a serial line (S1/Ro/Ri commands),
turns the condition record and raw sample bytes into calibrated traces, and
resamples traces for display. A background worker runs the command loop and
reports through single-slot mailboxes.
"""

from importlib.metadata import PackageNotFoundError, version

from .channels import Channel
from .config import CaptureConfig, Command, HostConfig, PortSettings, load_config
from .errors import (
    ConditionDecodeError,
    ConditionFrameError,
    ConnectionTestFailure,
    OscilloscopeError,
    WaveformFrameError,
    WriteFailure,
)
from .interpolation import Kernel, interpolate, moving_average_filter, resample_for_display
from .processing import ValueUnitPair, get_scale_units, parse_unit, scale_waveform_data, unit_scale
from .protocol import OscilloscopeCapture, Waveform
from .worker import CaptureResult, CaptureWorker, Mailbox, ScopeController, ScopeStatus

try:  # pragma: no cover - fallback when package metadata missing
    __version__ = version("os3000-host")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    "Channel",
    "CaptureConfig",
    "Command",
    "HostConfig",
    "PortSettings",
    "load_config",
    "OscilloscopeError",
    "ConnectionTestFailure",
    "ConditionFrameError",
    "ConditionDecodeError",
    "WaveformFrameError",
    "WriteFailure",
    "Kernel",
    "interpolate",
    "moving_average_filter",
    "resample_for_display",
    "ValueUnitPair",
    "parse_unit",
    "get_scale_units",
    "scale_waveform_data",
    "unit_scale",
    "OscilloscopeCapture",
    "Waveform",
    "CaptureResult",
    "CaptureWorker",
    "Mailbox",
    "ScopeController",
    "ScopeStatus",
]
