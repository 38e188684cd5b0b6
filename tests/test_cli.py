from __future__ import annotations

from pathlib import Path

import pytest
from conftest import FakeDevice, FakeFrameSource
from typer.testing import CliRunner

from stripsync import cli
from stripsync.core.model import (
    CandidateDevice,
    DispatchOutcome,
    DispatchResult,
    MatchReport,
    SetBrightness,
    SetColor,
    SetPower,
)


class FakeClient:
    report = MatchReport(definite=None, candidates=())
    outcome = DispatchOutcome.SENT

    def __init__(self, *, settings=None, **_: object) -> None:
        self.settings = settings

    def scan(self, *, window_s=None):
        return self.report

    def _result(self, intent) -> DispatchResult:
        detail = None if self.outcome is DispatchOutcome.SENT else "write failed"
        return DispatchResult(intent, self.outcome, detail=detail)

    def set_color(self, identifier, r, g, b):
        return self._result(SetColor.rgb(r, g, b))

    def set_power(self, identifier, on):
        return self._result(SetPower(on))

    def set_brightness(self, identifier, level):
        return self._result(SetBrightness.clamp(level))


runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_config_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))


def test_scan_reports_definite_match(monkeypatch):
    class MatchClient(FakeClient):
        report = MatchReport(
            definite=CandidateDevice(identifier="BE:27:62:00:3E:91", name="ELK-BLEDOM", rssi=-40),
            candidates=(),
        )

    monkeypatch.setattr(cli, "Client", MatchClient)
    result = runner.invoke(cli.app, ["scan"])
    assert result.exit_code == 0
    assert "FOUND MATCH: BE:27:62:00:3E:91" in result.stdout
    assert "stripsync serve BE:27:62:00:3E:91" in result.stdout


def test_scan_lists_ranked_candidates(monkeypatch):
    class CandidateClient(FakeClient):
        report = MatchReport(
            definite=None,
            candidates=(
                CandidateDevice(identifier="Y", name="Unknown", rssi=-40),
                CandidateDevice(identifier="X", name="LEDnet", rssi=-70),
            ),
        )

    monkeypatch.setattr(cli, "Client", CandidateClient)
    result = runner.invoke(cli.app, ["scan", "--window", "2"])
    assert result.exit_code == 0
    assert result.stdout.index("Y (signal -40)") < result.stdout.index("X (signal -70)")


def test_scan_window_option_reaches_settings(monkeypatch):
    seen = {}

    class RecordingClient(FakeClient):
        def scan(self, *, window_s=None):
            seen["window"] = self.settings.scan_window_s
            return self.report

    monkeypatch.setattr(cli, "Client", RecordingClient)
    result = runner.invoke(cli.app, ["scan", "--window", "2.5"])
    assert result.exit_code == 0
    assert seen["window"] == 2.5
    assert "No likely devices found" in result.stdout


def test_color_command_reports_clamped_color(monkeypatch):
    monkeypatch.setattr(cli, "Client", FakeClient)
    result = runner.invoke(cli.app, ["color", "AA:BB", "300", "--", "-5", "128"])
    assert result.exit_code == 0
    assert "Color set to rgb(255, 0, 128)" in result.stdout


def test_color_command_accepts_hex(monkeypatch):
    monkeypatch.setattr(cli, "Client", FakeClient)
    result = runner.invoke(cli.app, ["color", "AA:BB", "#FF0080"])
    assert result.exit_code == 0
    assert "Color set to rgb(255, 0, 128)" in result.stdout


@pytest.mark.parametrize("values", [["#ff00"], ["1", "2"], ["red", "0", "0"]])
def test_color_command_rejects_bad_values(monkeypatch, values):
    monkeypatch.setattr(cli, "Client", FakeClient)
    result = runner.invoke(cli.app, ["color", "AA:BB", *values])
    assert result.exit_code == 1
    assert result.stderr.startswith("Error: ")


def test_power_command(monkeypatch):
    monkeypatch.setattr(cli, "Client", FakeClient)
    result = runner.invoke(cli.app, ["power", "AA:BB", "off"])
    assert result.exit_code == 0
    assert "Power set to OFF" in result.stdout


def test_power_command_rejects_unknown_state(monkeypatch):
    monkeypatch.setattr(cli, "Client", FakeClient)
    result = runner.invoke(cli.app, ["power", "AA:BB", "maybe"])
    assert result.exit_code == 1
    assert "must be 'on' or 'off'" in result.stderr


def test_brightness_command(monkeypatch):
    monkeypatch.setattr(cli, "Client", FakeClient)
    result = runner.invoke(cli.app, ["brightness", "AA:BB", "150"])
    assert result.exit_code == 0
    assert "Brightness set to 100%" in result.stdout


def test_failed_command_error_is_clean(monkeypatch):
    class FailingClient(FakeClient):
        outcome = DispatchOutcome.FAILED

    monkeypatch.setattr(cli, "Client", FailingClient)
    result = runner.invoke(cli.app, ["power", "AA:BB", "on"])
    assert result.exit_code == 1
    assert "Error: write failed" in result.stderr
    assert "Traceback" not in result.stdout
    assert "Traceback" not in result.stderr


def test_missing_config_file_is_clean_error(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "Client", FakeClient)
    result = runner.invoke(cli.app, ["--config", str(tmp_path / "nope.yaml"), "scan"])
    assert result.exit_code == 1
    assert "does not exist" in result.stderr


def test_sync_reports_unavailable_screen(monkeypatch):
    devices: list[FakeDevice] = []

    def device_factory(identifier, settings):
        device = FakeDevice(identifier, settings)
        devices.append(device)
        return device

    monkeypatch.setattr(cli, "BledomDevice", device_factory)
    monkeypatch.setattr(cli, "ScreenFrameSource", lambda monitor: FakeFrameSource([None], fail_open=True))
    result = runner.invoke(cli.app, ["sync", "AA:BB"])
    assert result.exit_code == 1
    assert "Error: display went away" in result.stderr
    assert devices[0].closed
