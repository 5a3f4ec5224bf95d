"""Tests for bus settings and logging setup."""

import pytest
from pydantic import ValidationError

from weakbus.core.settings import BusSettings
from weakbus.logging import configure_logging


class TestBusSettings:
    def test_defaults(self) -> None:
        settings = BusSettings()
        assert settings.async_workers == 4
        assert settings.thread_name_prefix == "weakbus-async"
        assert settings.log_deliveries is False

    def test_from_env(self) -> None:
        settings = BusSettings.from_env(
            {
                "WEAKBUS_ASYNC_WORKERS": "8",
                "WEAKBUS_LOG_DELIVERIES": "true",
                "UNRELATED": "ignored",
            }
        )
        assert settings.async_workers == 8
        assert settings.log_deliveries is True
        assert settings.thread_name_prefix == "weakbus-async"

    def test_from_env_validates(self) -> None:
        with pytest.raises(ValidationError):
            BusSettings.from_env({"WEAKBUS_ASYNC_WORKERS": "0"})

    def test_frozen(self) -> None:
        settings = BusSettings()
        with pytest.raises(ValidationError):
            settings.async_workers = 2

    def test_unknown_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            BusSettings(queue_size=10)


class TestLogging:
    def test_configure_logging(self) -> None:
        configure_logging("DEBUG")
        configure_logging(json=True)
