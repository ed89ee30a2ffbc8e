"""Tests for runtime settings."""

import pytest

from serial_flasher.config import FlasherSettings, load_settings


class TestFlasherSettings:
    def test_defaults(self):
        settings = FlasherSettings()
        assert settings.baud_rate == 115200
        assert settings.connect_mode == "default-reset"
        assert settings.trace is False

    def test_invalid_values(self):
        with pytest.raises(ValueError, match="Baud rate"):
            FlasherSettings(baud_rate=0)
        with pytest.raises(ValueError, match="connect mode"):
            FlasherSettings(connect_mode="hard")
        with pytest.raises(ValueError):
            FlasherSettings(reset_pulse_seconds=0)

    def test_with_overrides_ignores_none(self):
        settings = FlasherSettings().with_overrides(baud_rate=460800, connect_mode=None)
        assert settings.baud_rate == 460800
        assert settings.connect_mode == "default-reset"

    def test_with_overrides_validates(self):
        with pytest.raises(ValueError):
            FlasherSettings().with_overrides(connect_mode="bogus")


class TestLoadSettings:
    def test_empty_environment(self):
        assert load_settings({}) == FlasherSettings()

    def test_environment_overrides(self):
        settings = load_settings({
            "SERIAL_FLASHER_BAUD": "921600",
            "SERIAL_FLASHER_CONNECT_MODE": "no-reset",
            "SERIAL_FLASHER_CONNECT_ATTEMPTS": "3",
            "SERIAL_FLASHER_RESET_PULSE": "0.25",
            "SERIAL_FLASHER_TIMEOUT": "5",
            "SERIAL_FLASHER_TRACE": "yes",
        })

        assert settings == FlasherSettings(
            baud_rate=921600,
            connect_mode="no-reset",
            connect_attempts=3,
            reset_pulse_seconds=0.25,
            serial_timeout=5.0,
            trace=True,
        )

    def test_bad_number(self):
        with pytest.raises(ValueError, match="SERIAL_FLASHER_BAUD must be a number"):
            load_settings({"SERIAL_FLASHER_BAUD": "fast"})

    def test_bad_bool(self):
        with pytest.raises(ValueError, match="SERIAL_FLASHER_TRACE must be a boolean"):
            load_settings({"SERIAL_FLASHER_TRACE": "maybe"})

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("SERIAL_FLASHER_BAUD", "230400")
        assert load_settings().baud_rate == 230400
