"""Command line interface for the os3000 package."""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Optional

import numpy as np
import serial
import typer

from .config import CaptureConfig, Command, HostConfig, load_config, override_from_option
from .errors import OscilloscopeError
from .interpolation import moving_average_filter, resample_for_display
from .processing import make_rectangle
from .protocol import OscilloscopeCapture
from .worker import ScopeController, ScopeStatus

logger = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, help="OS3000 oscilloscope capture utilities.")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level (DEBUG, INFO, WARNING)."),
) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _host_config(
    config_path: Optional[Path],
    port: Optional[str],
    baudrate: Optional[int],
    stop_bits: Optional[int],
    channel: Optional[str],
    override: Optional[List[str]],
) -> HostConfig:
    overrides = (
        override_from_option("port.name", port)
        + override_from_option("port.baudrate", baudrate)
        + override_from_option("port.stop_bits", stop_bits)
        + override_from_option("channel", channel)
        + list(override or [])
    )
    try:
        return load_config(config_path, overrides or None)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _open(cfg: HostConfig) -> OscilloscopeCapture:
    try:
        return OscilloscopeCapture.open(cfg.port)
    except serial.SerialException as exc:
        typer.echo(f"Cannot open {cfg.port.name}: {exc}", err=True)
        raise typer.Exit(code=2) from exc


PortOption = typer.Option(None, "--port", "-p", help="Serial device.")
BaudOption = typer.Option(None, "--baud", help="Baudrate (300-9600).")
StopBitsOption = typer.Option(None, "--stop-bits", help="Stop bits (1 or 2).")
ChannelOption = typer.Option(None, "--channel", help="display1|display2|save1|save2 or 1-4.")
ConfigOption = typer.Option(None, "--config", "-c", help="Path to host config JSON.")
SetOption = typer.Option(None, "--set", help="Override config keys, e.g. --set display.kernel=cosine")


@app.command()
def test(
    port: Optional[str] = PortOption,
    baudrate: Optional[int] = BaudOption,
    stop_bits: Optional[int] = StopBitsOption,
    config_path: Optional[Path] = ConfigOption,
    override: Optional[List[str]] = SetOption,
) -> None:
    """Send S1 and report whether the instrument acknowledged."""
    cfg = _host_config(config_path, port, baudrate, stop_bits, None, override)
    with _open(cfg) as capture:
        try:
            capture.send_s1()
        except OscilloscopeError as exc:
            typer.echo(f"Connection FAILED: {exc}")
            raise typer.Exit(code=1) from exc
    typer.echo("Connection OK")


@app.command()
def conditions(
    port: Optional[str] = PortOption,
    baudrate: Optional[int] = BaudOption,
    stop_bits: Optional[int] = StopBitsOption,
    channel: Optional[str] = ChannelOption,
    config_path: Optional[Path] = ConfigOption,
    override: Optional[List[str]] = SetOption,
) -> None:
    """Read the measurement conditions of a channel."""
    cfg = _host_config(config_path, port, baudrate, stop_bits, channel, override)
    with _open(cfg) as capture:
        try:
            time_unit, voltage_unit = capture.read_conditions(cfg.channel)
        except OscilloscopeError as exc:
            typer.echo(f"Conditions FAILED: {exc}")
            raise typer.Exit(code=1) from exc
    typer.echo(f"Channel: {cfg.channel}")
    typer.echo(f"Time/div: {time_unit}")
    typer.echo(f"Volts/div: {voltage_unit}")


@app.command()
def capture(
    port: Optional[str] = PortOption,
    baudrate: Optional[int] = BaudOption,
    stop_bits: Optional[int] = StopBitsOption,
    channel: Optional[str] = ChannelOption,
    config_path: Optional[Path] = ConfigOption,
    override: Optional[List[str]] = SetOption,
    overlay_period: Optional[float] = typer.Option(
        None, "--overlay-period", help="Also build a smoothed rectangle overlay with this period."
    ),
) -> None:
    """Capture one waveform, resample it for display and print a summary."""
    cfg = _host_config(config_path, port, baudrate, stop_bits, channel, override)
    if overlay_period is not None and overlay_period <= 0:
        raise typer.BadParameter("--overlay-period must be positive")
    with _open(cfg) as scope:
        try:
            waveform = scope.get_waveform_data(cfg.channel)
        except OscilloscopeError as exc:
            typer.echo(f"Capture FAILED: {exc}")
            raise typer.Exit(code=1) from exc
    display = cfg.display
    trace = resample_for_display(
        waveform.samples,
        display.points,
        waveform.time_unit.value,
        kernel=display.kernel_enum,
        step=display.step,
        prepass_step=display.prepass_step,
        prepass_points=display.prepass_points,
    )
    average = moving_average_filter(trace, display.average_window)
    typer.echo(f"Channel: {cfg.channel}")
    typer.echo(f"Time/div: {waveform.time_unit}  Volts/div: {waveform.voltage_unit}")
    typer.echo(f"Points: {trace.size} ({display.kernel_enum.value}, step={display.step})")
    typer.echo(
        f"Min: {np.min(trace):.4g} {waveform.voltage_unit.unit_name}  "
        f"Max: {np.max(trace):.4g} {waveform.voltage_unit.unit_name}  "
        f"Mean: {np.mean(average):.4g} {waveform.voltage_unit.unit_name}"
    )
    if overlay_period is not None:
        rectangle = make_rectangle(
            waveform.voltage_unit.value, 1.0, waveform.time_unit.value, overlay_period, count=trace.size
        )
        overlay = moving_average_filter(rectangle, display.average_window)
        typer.echo(f"Overlay: {overlay.size} points, range {np.min(overlay):.4g} .. {np.max(overlay):.4g}")


@app.command()
def watch(
    command: Command = typer.Option(Command.WAVEFORM, "--command", help="test|conditions|waveform"),
    port: Optional[str] = PortOption,
    baudrate: Optional[int] = BaudOption,
    stop_bits: Optional[int] = StopBitsOption,
    channel: Optional[str] = ChannelOption,
    config_path: Optional[Path] = ConfigOption,
    override: Optional[List[str]] = SetOption,
    poll_interval: float = typer.Option(0.1, "--poll-interval", help="Status poll period (seconds)."),
) -> None:
    """Run the background capture loop and echo status changes until Ctrl+C."""
    cfg = _host_config(config_path, port, baudrate, stop_bits, channel, override)
    controller = ScopeController(CaptureConfig.from_host_config(cfg, command))
    last: Optional[ScopeStatus] = None
    controller.start()
    try:
        while True:
            status = controller.poll_status()
            if status is not last:
                typer.echo(f"[{time.strftime('%H:%M:%S')}] {status.label}")
                last = status
            result = controller.poll_result()
            if result is not None and result.success:
                if result.command is Command.WAVEFORM:
                    typer.echo(
                        f"  {result.samples.size} samples, time/div={result.time_unit}, "
                        f"volts/div={result.voltage_unit}, peak={np.max(np.abs(result.samples)):.4g}"
                    )
                elif result.command is Command.CONDITIONS:
                    typer.echo(f"  time/div={result.time_unit}, volts/div={result.voltage_unit}")
            time.sleep(poll_interval)
    except KeyboardInterrupt:
        logger.info("Stopping capture loop (Ctrl+C)")
    finally:
        controller.update(open_port=False, do_capture=False)
        controller.stop()


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
