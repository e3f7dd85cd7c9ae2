"""
Background capture loop and the mailboxes it reports through.

The foreground hands the worker immutable ``CaptureConfig`` snapshots over a
queue and reads back two single-slot mailboxes: one for the latest status,
one for the latest result. Both mailboxes overwrite on put, so a slow reader
only ever sees the newest message and the worker never blocks on it.
"""
from __future__ import annotations

import enum
import logging
import queue
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Generic, Optional, TypeVar

import numpy as np
import serial

from .config import CaptureConfig, Command, PortSettings
from .errors import (
    ConditionFrameError,
    ConnectionTestFailure,
    OscilloscopeError,
    WaveformFrameError,
    WriteFailure,
)
from .processing import ValueUnitPair
from .protocol import RECOVERY_DELAY, SAMPLE_COUNT, OscilloscopeCapture

logger = logging.getLogger(__name__)

T = TypeVar("T")

IDLE_INTERVAL = 1.0


class ScopeStatus(enum.Enum):
    IDLE = "Idle"
    TESTING_CONNECTION = "Testing Connection"
    TEST_FAILED = "Connection Failed"
    TEST_OK = "Connection Successful"
    GETTING_CONDITIONS = "Getting Measurement Conditions"
    CONDITIONS_FAILED = "Failed to get Measurement Conditions"
    GETTING_WAVEFORM = "Getting Waveform"
    WAVEFORM_FAILED = "Failed to get Waveform"
    WAVEFORM_OK = "Waveform captured"
    UNKNOWN_ERROR = "Unknown Error"

    @property
    def label(self) -> str:
        return self.value


_ERROR_STATUS = (
    (ConnectionTestFailure, ScopeStatus.TEST_FAILED),
    (ConditionFrameError, ScopeStatus.CONDITIONS_FAILED),
    (WaveformFrameError, ScopeStatus.WAVEFORM_FAILED),
    (WriteFailure, ScopeStatus.UNKNOWN_ERROR),
)


def status_for_error(exc: BaseException) -> ScopeStatus:
    for error_type, status in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return ScopeStatus.UNKNOWN_ERROR


@dataclass
class CaptureResult:
    """Outcome of one worker cycle, consumed once by the foreground."""

    success: bool
    command: Command
    time_unit: ValueUnitPair = field(default_factory=ValueUnitPair)
    voltage_unit: ValueUnitPair = field(default_factory=ValueUnitPair)
    samples: np.ndarray = field(default_factory=lambda: np.zeros(SAMPLE_COUNT))
    conditions: str = ""


class Mailbox(Generic[T]):
    """Single-slot message box: ``put`` replaces any unread item and never blocks."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[T]" = queue.Queue(maxsize=1)
        self._lock = threading.Lock()

    def put(self, item: T) -> None:
        with self._lock:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                pass
            self._queue.put_nowait(item)

    def take(self) -> Optional[T]:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None


class CaptureWorker(threading.Thread):
    def __init__(
        self,
        configs: "queue.Queue[Optional[CaptureConfig]]",
        status: Mailbox[ScopeStatus],
        results: Mailbox[CaptureResult],
        *,
        port_factory: Optional[Callable[[PortSettings], OscilloscopeCapture]] = None,
        sleep: Callable[[float], None] = time.sleep,
        idle_interval: float = IDLE_INTERVAL,
    ) -> None:
        super().__init__(daemon=True, name="os3000-capture")
        self.configs = configs
        self.status = status
        self.results = results
        self._sleep = sleep
        self._port_factory = port_factory or (lambda settings: OscilloscopeCapture.open(settings, sleep=sleep))
        self._idle_interval = idle_interval
        self._config = CaptureConfig()
        self._capture: Optional[OscilloscopeCapture] = None
        self._port_settings: Optional[PortSettings] = None
        self._stop_event = threading.Event()
        self.cycles = 0
        self.failures = 0
        self.last_exception: Optional[BaseException] = None
        self._log = logging.getLogger(__name__)

    @property
    def config(self) -> CaptureConfig:
        return self._config

    def run(self) -> None:
        try:
            while not self._stop_event.is_set():
                self._drain_configs()
                if self._stop_event.is_set():
                    break
                config = self._config
                if not config.open_port:
                    self._close_port()
                    self.status.put(ScopeStatus.IDLE)
                    self._wait_for_config(self._idle_interval)
                    continue
                if not config.do_capture:
                    self._wait_for_config(self._idle_interval)
                    continue
                try:
                    self.run_cycle(config)
                except Exception as exc:
                    self.last_exception = exc
                    self._log.exception("Unexpected error in capture cycle")
                    self.status.put(ScopeStatus.UNKNOWN_ERROR)
                    self._close_port()
                    self._sleep(RECOVERY_DELAY)
        finally:
            self._close_port()

    def stop(self) -> None:
        self._stop_event.set()
        self.configs.put(None)

    def run_cycle(self, config: CaptureConfig) -> Optional[CaptureResult]:
        """Execute one command cycle for ``config``; errors end the cycle, never the loop."""
        try:
            capture = self._ensure_port(config.port)
        except serial.SerialException as exc:
            self.last_exception = exc
            self.failures += 1
            self._log.warning("Cannot open %s: %s", config.port.name, exc)
            self.status.put(ScopeStatus.UNKNOWN_ERROR)
            self._sleep(RECOVERY_DELAY)
            return None

        self.cycles += 1
        try:
            result = self._dispatch(capture, config)
        except OscilloscopeError as exc:
            self.last_exception = exc
            self.failures += 1
            status = status_for_error(exc)
            self._log.warning("%s command failed (%s): %s", config.command.value, status.name, exc)
            self.status.put(status)
            if config.command is not Command.WAVEFORM:
                self.results.put(CaptureResult(success=False, command=config.command))
            capture.recover()
            if isinstance(exc.__cause__, serial.SerialException):
                self._close_port()
            return None
        self.results.put(result)
        return result

    def _dispatch(self, capture: OscilloscopeCapture, config: CaptureConfig) -> CaptureResult:
        if config.command is Command.TEST:
            self.status.put(ScopeStatus.TESTING_CONNECTION)
            capture.send_s1()
            self.status.put(ScopeStatus.TEST_OK)
            return CaptureResult(success=True, command=config.command)
        if config.command is Command.CONDITIONS:
            self.status.put(ScopeStatus.GETTING_CONDITIONS)
            time_unit, voltage_unit = capture.read_conditions(config.channel)
            return CaptureResult(
                success=True,
                command=config.command,
                time_unit=time_unit,
                voltage_unit=voltage_unit,
                conditions=capture.condition_string,
            )
        self.status.put(ScopeStatus.GETTING_WAVEFORM)
        waveform = capture.get_waveform_data(config.channel, 1.0)
        self.status.put(ScopeStatus.WAVEFORM_OK)
        return CaptureResult(
            success=True,
            command=config.command,
            time_unit=waveform.time_unit,
            voltage_unit=waveform.voltage_unit,
            samples=waveform.samples,
            conditions=waveform.conditions,
        )

    def _ensure_port(self, settings: PortSettings) -> OscilloscopeCapture:
        if self._capture is not None and settings == self._port_settings:
            return self._capture
        self._close_port()
        self._capture = self._port_factory(settings)
        self._port_settings = settings
        return self._capture

    def _close_port(self) -> None:
        if self._capture is None:
            return
        self._capture.close()
        self._capture = None
        self._port_settings = None
        self._log.debug("Port closed")

    def _drain_configs(self) -> None:
        while True:
            try:
                item = self.configs.get_nowait()
            except queue.Empty:
                return
            if item is not None:
                self._config = item

    def _wait_for_config(self, timeout: float) -> None:
        try:
            item = self.configs.get(timeout=timeout)
        except queue.Empty:
            return
        if item is not None:
            self._config = item
        self._drain_configs()


class ScopeController:
    """
    Foreground side of the capture worker: push configuration, pull status
    and results. Nothing else crosses between the two threads.
    """

    def __init__(self, initial: Optional[CaptureConfig] = None, **worker_options) -> None:
        self._configs: "queue.Queue[Optional[CaptureConfig]]" = queue.Queue()
        self.status: Mailbox[ScopeStatus] = Mailbox()
        self.results: Mailbox[CaptureResult] = Mailbox()
        self._current = initial or CaptureConfig()
        self._last_status = ScopeStatus.IDLE
        self._worker = CaptureWorker(self._configs, self.status, self.results, **worker_options)
        self._configs.put(self._current)

    @property
    def current_config(self) -> CaptureConfig:
        return self._current

    @property
    def worker(self) -> CaptureWorker:
        return self._worker

    def start(self) -> None:
        self._worker.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._worker.stop()
        self._worker.join(timeout=timeout)

    def push_config(self, config: CaptureConfig) -> None:
        self._current = config
        self._configs.put(config)

    def update(self, **changes) -> CaptureConfig:
        config = replace(self._current, **changes)
        self.push_config(config)
        return config

    def poll_status(self) -> ScopeStatus:
        """Most recent status; repeats the previous one when nothing new arrived."""
        status = self.status.take()
        if status is not None:
            self._last_status = status
        return self._last_status

    def poll_result(self) -> Optional[CaptureResult]:
        return self.results.take()

    def __enter__(self) -> "ScopeController":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
