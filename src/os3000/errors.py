"""Stage-specific failures raised by the capture protocol."""
from __future__ import annotations


class OscilloscopeError(Exception):
    """Base class for every protocol stage failure."""


class ConnectionTestFailure(OscilloscopeError):
    """S1 handshake failed: wrong acknowledge byte, short frame or write error."""


class WaveformFrameError(OscilloscopeError):
    """Ri frame had the wrong length or the read failed."""


class ConditionFrameError(OscilloscopeError):
    """Ro frame had the wrong length or did not contain usable scale units."""


class ConditionDecodeError(ConditionFrameError):
    """Ro frame had the right length but was not valid UTF-8."""


class WriteFailure(OscilloscopeError):
    """Transmitting a command failed."""
