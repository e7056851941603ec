import pytest
from pydantic import ValidationError

from lane_sense.camera import parse_device
from lane_sense.config import Mode, Settings, get_mode, get_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in Settings.model_fields:
        monkeypatch.delenv(f"LANE_SENSE_{name.upper()}", raising=False)


def test_defaults():
    settings = get_settings()
    assert settings.canvas == (1280, 720)
    assert settings.tick_interval == 0.25
    assert settings.overlay_enabled is False
    assert settings.camera == "0"
    assert settings.model_path is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("LANE_SENSE_TICK_INTERVAL", "0.5")
    monkeypatch.setenv("LANE_SENSE_OVERLAY_ENABLED", "true")
    monkeypatch.setenv("LANE_SENSE_CANVAS_WIDTH", "640")
    monkeypatch.setenv("LANE_SENSE_CAMERA", "drive.mp4")
    monkeypatch.setenv("LANE_SENSE_PORT", "")
    monkeypatch.setenv("LANE_SENSE_MODE", "production")
    monkeypatch.setenv("TICK_INTERVAL", "9")

    settings = get_settings()
    assert settings.tick_interval == 0.5
    assert settings.overlay_enabled is True
    assert settings.canvas == (640, 720)
    assert settings.camera == "drive.mp4"
    assert settings.port == 8000


def test_explicit_values_win_over_environment(monkeypatch):
    monkeypatch.setenv("LANE_SENSE_CANVAS_WIDTH", "640")
    assert Settings(canvas_width=128).canvas == (128, 720)


@pytest.mark.parametrize("name, value", [
    ("LANE_SENSE_TICK_INTERVAL", "0"),
    ("LANE_SENSE_CANVAS_HEIGHT", "-720"),
    ("LANE_SENSE_PORT", "http"),
])
def test_invalid_values_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        get_settings()


def test_mode(monkeypatch):
    monkeypatch.delenv("LANE_SENSE_MODE", raising=False)
    assert get_mode() == Mode.DEV
    monkeypatch.setenv("LANE_SENSE_MODE", "Production")
    assert get_mode() == Mode.PRODUCTION


def test_parse_device():
    assert parse_device("0") == 0
    assert parse_device(" 2 ") == 2
    assert parse_device(1) == 1
    assert parse_device("drive.mp4") == "drive.mp4"
    assert parse_device("rtsp://cam/stream") == "rtsp://cam/stream"
