from __future__ import annotations

from typer.testing import CliRunner

from fakes import FakeScopePort, scope_responses
from os3000 import cli
from os3000.protocol import OscilloscopeCapture

runner = CliRunner()


def _patch_open(monkeypatch, responses):
    port = FakeScopePort(responses)
    monkeypatch.setattr(cli, "_open", lambda cfg: OscilloscopeCapture(port, sleep=lambda _: None))
    return port


def test_cli_test_command_ok(monkeypatch) -> None:
    _patch_open(monkeypatch, scope_responses())
    result = runner.invoke(cli.app, ["test", "--port", "/dev/ttyFAKE"])
    assert result.exit_code == 0
    assert "Connection OK" in result.stdout


def test_cli_test_command_failure(monkeypatch) -> None:
    _patch_open(monkeypatch, scope_responses(ack=b"B\r"))
    result = runner.invoke(cli.app, ["test"])
    assert result.exit_code == 1
    assert "FAILED" in result.stdout


def test_cli_conditions_command(monkeypatch) -> None:
    port = _patch_open(monkeypatch, scope_responses())
    result = runner.invoke(cli.app, ["conditions", "--channel", "display1"])
    assert result.exit_code == 0
    assert "1 ms" in result.stdout
    assert "5 mV" in result.stdout
    assert port.written == [b"Ro(1)\r"]


def test_cli_capture_command(monkeypatch) -> None:
    _patch_open(monkeypatch, scope_responses())
    result = runner.invoke(cli.app, ["capture", "--set", "display.kernel=bezier", "--set", "display.points=1200"])
    assert result.exit_code == 0
    assert "Points: 1200 (bezier, step=2)" in result.stdout


def test_cli_rejects_bad_baud(monkeypatch) -> None:
    _patch_open(monkeypatch, scope_responses())
    result = runner.invoke(cli.app, ["test", "--baud", "115200"])
    assert result.exit_code != 0


def test_cli_capture_with_rectangle_overlay(monkeypatch) -> None:
    _patch_open(monkeypatch, scope_responses())
    result = runner.invoke(cli.app, ["capture", "--overlay-period", "3"])
    assert result.exit_code == 0
    assert "Overlay: 1000 points, range -10 .. 0" in result.stdout


def test_cli_capture_rejects_bad_display_settings_before_opening_port(monkeypatch) -> None:
    opened = []
    monkeypatch.setattr(cli, "_open", lambda cfg: opened.append(cfg))
    for override in ("display.step=0", "display.prepass_step=0", "display.average_window=0"):
        result = runner.invoke(cli.app, ["capture", "--set", override])
        assert result.exit_code == 2, override
        assert not isinstance(result.exception, ValueError)
    result = runner.invoke(cli.app, ["capture", "--overlay-period", "0"])
    assert result.exit_code == 2
    assert opened == []


def test_cli_capture_with_prepass_points(monkeypatch) -> None:
    _patch_open(monkeypatch, scope_responses())
    result = runner.invoke(cli.app, ["capture", "--set", "display.prepass_points=1500"])
    assert result.exit_code == 0
    assert "Points: 1000 (linear, step=2)" in result.stdout
