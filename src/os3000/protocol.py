"""
Command/response driver for the OS3000 serial protocol.

Every command is ASCII terminated by CR and every response is read until the
instrument sends CR or the port stays silent for the read timeout. The
instrument is slow: each command is followed by a fixed settle delay before
the response is read, and a capture cycle pauses again between commands.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, NamedTuple, Optional, Tuple

import numpy as np
import serial

from .channels import Channel
from .config import PortSettings
from .errors import (
    ConditionDecodeError,
    ConditionFrameError,
    ConnectionTestFailure,
    WaveformFrameError,
    WriteFailure,
)
from .processing import ValueUnitPair, get_scale_units, scale_waveform_data, unit_scale

logger = logging.getLogger(__name__)

TERMINATOR = 0x0D
TEST_ACK = 0x41
TEST_FRAME_LEN = 2
CONDITION_FRAME_LEN = 68
WAVEFORM_HEADER_LEN = 14
# header + terminator around the addressed bytes
WAVEFORM_FRAME_OVERHEAD = WAVEFORM_HEADER_LEN + 1
WAVEFORM_START_ADDRESS = 0
WAVEFORM_END_ADDRESS = 1000
SAMPLE_COUNT = 1000
MAX_ADDRESS = 9999

# Instrument settle times in seconds. These are device requirements.
TEST_RESPONSE_DELAY = 0.010
CONDITIONS_RESPONSE_DELAY = 1.0
WAVEFORM_RESPONSE_DELAY = 0.750
HANDSHAKE_SETTLE = 0.500
CONDITIONS_SETTLE = 0.250
RECOVERY_DELAY = 1.0


def encode_test_command() -> str:
    return "S1\r"


def encode_conditions_command(channel: Channel) -> str:
    return f"Ro({int(channel)})\r"


def encode_waveform_command(channel: Channel, start_address: int, end_address: int) -> str:
    if not 0 <= start_address <= end_address <= MAX_ADDRESS:
        raise ValueError(
            f"Invalid waveform address range {start_address}..{end_address} (0 <= start <= end <= {MAX_ADDRESS})"
        )
    return f"R{int(channel)}({start_address:04d},{end_address:04d},B)\r"


def expected_waveform_length(start_address: int, end_address: int) -> int:
    return (end_address - start_address) + WAVEFORM_FRAME_OVERHEAD


def extract_payload(frame: bytes | bytearray, start_address: int, end_address: int) -> bytes:
    """Sample bytes of an Ri frame whose terminator was already removed."""
    return bytes(frame[WAVEFORM_HEADER_LEN : end_address - start_address])


class Waveform(NamedTuple):
    samples: np.ndarray
    time_unit: ValueUnitPair
    voltage_unit: ValueUnitPair
    conditions: str = ""


class OscilloscopeCapture:
    """
    Owns one serial handle and the command/response buffers reused across
    commands. Not thread safe; the capture worker is its only user.
    """

    def __init__(self, port, *, sleep: Callable[[float], None] = time.sleep) -> None:
        self.port = port
        self.condition_string = ""
        self._sleep = sleep
        self._command = bytearray()
        self._response = bytearray()
        self._log = logging.getLogger(__name__)

    @classmethod
    def open(cls, settings: PortSettings, *, sleep: Callable[[float], None] = time.sleep) -> "OscilloscopeCapture":
        port = serial.Serial(
            port=settings.name,
            baudrate=settings.baudrate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_TWO if settings.stop_bits == 2 else serial.STOPBITS_ONE,
            timeout=settings.timeout,
            xonxoff=False,
            rtscts=False,
        )
        logger.info("Opened %s (%d baud, %d stop bits)", settings.name, settings.baudrate, settings.stop_bits)
        return cls(port, sleep=sleep)

    def close(self) -> None:
        try:
            self.port.close()
        except serial.SerialException as exc:
            self._log.debug("Error closing port: %s", exc)

    def __enter__(self) -> "OscilloscopeCapture":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def response(self) -> bytes:
        return bytes(self._response)

    def _write(self, command: str) -> None:
        self._command.clear()
        self._command.extend(command.encode("ascii"))
        try:
            self.port.write(self._command)
        finally:
            self._command.clear()

    def _read_frame(self) -> int:
        # read(1) returns empty once the port has been silent for its timeout
        self._response.clear()
        while True:
            chunk = self.port.read(1)
            if not chunk:
                break
            self._response.extend(chunk)
            if chunk[-1] == TERMINATOR:
                break
        return len(self._response)

    def send_s1(self) -> None:
        try:
            self._write(encode_test_command())
        except serial.SerialException as exc:
            raise ConnectionTestFailure(f"S1 write failed: {exc}") from exc
        self._sleep(TEST_RESPONSE_DELAY)
        try:
            count = self._read_frame()
        except serial.SerialException as exc:
            raise ConnectionTestFailure(f"S1 read failed: {exc}") from exc
        if count != TEST_FRAME_LEN or self._response[0] != TEST_ACK:
            raise ConnectionTestFailure(f"Unexpected S1 response {bytes(self._response)!r}")
        self._log.debug("S1 acknowledged")

    def send_ro(self, channel: Channel) -> str:
        self.condition_string = ""
        try:
            self._write(encode_conditions_command(channel))
        except serial.SerialException as exc:
            raise WriteFailure(f"Ro write failed: {exc}") from exc
        self._sleep(CONDITIONS_RESPONSE_DELAY)
        try:
            count = self._read_frame()
        except serial.SerialException as exc:
            raise ConditionFrameError(f"Ro read failed: {exc}") from exc
        self._log.debug("Ro(%d) returned %d bytes", int(channel), count)
        if count != CONDITION_FRAME_LEN:
            raise ConditionFrameError(f"Ro frame has {count} bytes, expected {CONDITION_FRAME_LEN}")
        try:
            self.condition_string = self._response.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ConditionDecodeError(f"Ro frame is not valid UTF-8: {exc}") from exc
        return self.condition_string

    def send_ri(
        self,
        channel: Channel,
        start_address: int = WAVEFORM_START_ADDRESS,
        end_address: int = WAVEFORM_END_ADDRESS,
    ) -> bytes:
        """Request waveform memory and return the frame without its terminator."""
        command = encode_waveform_command(channel, start_address, end_address)
        try:
            self._write(command)
        except serial.SerialException as exc:
            raise WriteFailure(f"Ri write failed: {exc}") from exc
        self._sleep(WAVEFORM_RESPONSE_DELAY)
        try:
            count = self._read_frame()
        except serial.SerialException as exc:
            raise WaveformFrameError(f"Ri read failed: {exc}") from exc
        expected = expected_waveform_length(start_address, end_address)
        self._log.debug("R%d returned %d bytes (expected %d)", int(channel), count, expected)
        if count != expected:
            raise WaveformFrameError(f"Ri frame has {count} bytes, expected {expected}")
        del self._response[-1]
        return bytes(self._response)

    def read_conditions(self, channel: Channel) -> Tuple[ValueUnitPair, ValueUnitPair]:
        condition_string = self.send_ro(channel)
        units = get_scale_units(condition_string)
        if units is None:
            raise ConditionFrameError(f"No scale units in condition record {condition_string!r}")
        return units

    def get_waveform_data(self, channel: Channel, scale: float = 1.0) -> Waveform:
        """Run S1, Ro and Ri in order and return the calibrated trace."""
        self.send_s1()
        self._log.info("S1 successful")
        self._sleep(HANDSHAKE_SETTLE)

        time_unit, voltage_unit = self.read_conditions(channel)
        self._log.info("Ro successful (time/div=%s, volts/div=%s)", time_unit, voltage_unit)
        self._sleep(CONDITIONS_SETTLE)

        frame = self.send_ri(channel, WAVEFORM_START_ADDRESS, WAVEFORM_END_ADDRESS)
        self._log.info("Ri successful")
        payload = extract_payload(frame, WAVEFORM_START_ADDRESS, WAVEFORM_END_ADDRESS)
        samples = np.zeros(SAMPLE_COUNT, dtype=float)
        samples[: len(payload)] = scale_waveform_data(payload, voltage_unit.value, scale)
        samples = unit_scale(samples, voltage_unit)
        return Waveform(samples, time_unit, voltage_unit, self.condition_string)

    def recover(self, delay: Optional[float] = None) -> None:
        """Let the instrument finish whatever it was sending, then drop it."""
        self._sleep(RECOVERY_DELAY if delay is None else delay)
        try:
            self.port.reset_input_buffer()
        except serial.SerialException as exc:
            self._log.debug("Could not flush input: %s", exc)
        self._command.clear()
        self._response.clear()
