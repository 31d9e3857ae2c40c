import logging

import structlog

from bloomd.config import Settings, settings
from bloomd.logging import setup_logging


def test_defaults():
    fresh = Settings(_env_file=None)
    assert fresh.port == 8673
    assert fresh.timeout_sec is None
    assert fresh.hash_keys is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("BLOOMD_PORT", "9000")
    monkeypatch.setenv("BLOOMD_TIMEOUT_SEC", "2.5")
    monkeypatch.setenv("BLOOMD_HASH_KEYS", "true")

    overridden = Settings(_env_file=None)

    assert overridden.port == 9000
    assert overridden.timeout_sec == 2.5
    assert overridden.hash_keys is True


def test_setup_logging_writes_component_file(tmp_path, monkeypatch, caplog):
    monkeypatch.setattr(settings, "log_dir", tmp_path / "logs")
    caplog.set_level(logging.INFO)
    try:
        setup_logging("bloomd-test", level=logging.DEBUG)
        assert (tmp_path / "logs" / "bloomd-test.log").exists()

        messages = [record.getMessage() for record in caplog.records]
        initialized = [m for m in messages if "logging_initialized" in m]
        assert len(initialized) == 1
        assert '"component": "bloomd-test"' in initialized[0]
        assert '"log_level": "DEBUG"' in initialized[0]
    finally:
        structlog.reset_defaults()
