"""Tests for the configuration module."""

import pytest
from pydantic import ValidationError

from soilmon.lib.config import (
    AlertPolicy,
    ArchiveBackend,
    Settings,
    get_settings,
    parse_chat_ids,
)
from soilmon.lib.config.settings import _load_settings
from soilmon.lib.config.testing import set_settings
from soilmon.lib.exceptions import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Isolate Settings() from the host environment and any .env file."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "DB_PATH",
        "MQTT_HOST",
        "MQTT_TOPIC",
        "MOISTURE_THRESHOLD",
        "ALERT_POLICY",
        "ENABLE_NOTIFICATION_SERVICE",
        "BOT_TOKEN",
        "TELEGRAM_CHAT_IDS",
        "TELEGRAM_VERIFY_TLS",
        "ARCHIVE_BACKEND",
        "AWS_S3_BUCKET",
        "AWS_REGION",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestParseChatIds:
    def test_comma_separated(self):
        assert parse_chat_ids("1, 2,3") == ["1", "2", "3"]

    def test_blanks_ignored(self):
        assert parse_chat_ids(" , 1,, ") == ["1"]
        assert parse_chat_ids("") == []


class TestDefaults:
    def test_default_values(self, clean_env):
        clean_env.setenv("AWS_S3_BUCKET", "readings")
        settings = Settings()

        assert settings.db_path == "moisture.db"
        assert settings.mqtt.topic == "sensor/moisture/levels"
        assert settings.mqtt.port == 1883
        assert settings.server.port == 8080
        assert settings.alerts.policy == AlertPolicy.SUSTAINED
        assert settings.alerts.threshold == 25
        assert settings.alerts.delay_sec == 300
        assert settings.alerts.interval_sec == 300
        assert settings.telegram.enabled is False
        assert settings.telegram.verify_tls is True
        assert settings.archive.backend == ArchiveBackend.S3
        assert settings.archive.period_sec == 3600
        assert settings.archive.s3.bucket == "readings"
        assert settings.ingest.sensor_id_max_length == 64


class TestEnvironment:
    def test_env_overrides(self, clean_env):
        clean_env.setenv("MQTT_HOST", "broker.local")
        clean_env.setenv("MOISTURE_THRESHOLD", "40")
        clean_env.setenv("ALERT_POLICY", "cooldown")
        clean_env.setenv("ARCHIVE_BACKEND", "local")

        settings = Settings()

        assert settings.mqtt.host == "broker.local"
        assert settings.alerts.threshold == 40
        assert settings.alerts.policy == AlertPolicy.COOLDOWN
        assert settings.archive.backend == ArchiveBackend.LOCAL

    def test_notifications_from_env(self, clean_env):
        clean_env.setenv("ARCHIVE_BACKEND", "local")
        clean_env.setenv("ENABLE_NOTIFICATION_SERVICE", "1")
        clean_env.setenv("BOT_TOKEN", "123:abc")
        clean_env.setenv("TELEGRAM_CHAT_IDS", "100,200")
        clean_env.setenv("TELEGRAM_VERIFY_TLS", "0")

        settings = Settings()

        assert settings.telegram.enabled is True
        assert settings.telegram.bot_token.get_secret_value() == "123:abc"
        assert settings.telegram.chat_ids == ["100", "200"]
        assert settings.telegram.verify_tls is False

    def test_secrets_are_masked(self, clean_env):
        clean_env.setenv("ARCHIVE_BACKEND", "local")
        clean_env.setenv("BOT_TOKEN", "123:abc")
        assert "123:abc" not in repr(Settings())


class TestValidation:
    def test_notifications_without_token(self, clean_env):
        clean_env.setenv("AWS_S3_BUCKET", "readings")
        clean_env.setenv("ENABLE_NOTIFICATION_SERVICE", "1")
        clean_env.setenv("TELEGRAM_CHAT_IDS", "100")

        with pytest.raises(ConfigurationError, match="BOT_TOKEN"):
            Settings()

    def test_notifications_without_chat_ids(self, clean_env):
        clean_env.setenv("AWS_S3_BUCKET", "readings")
        clean_env.setenv("ENABLE_NOTIFICATION_SERVICE", "1")
        clean_env.setenv("BOT_TOKEN", "123:abc")

        with pytest.raises(ConfigurationError, match="TELEGRAM_CHAT_IDS"):
            Settings()

    def test_s3_backend_requires_bucket(self, clean_env):
        with pytest.raises(ConfigurationError, match="AWS_S3_BUCKET"):
            Settings()

    def test_empty_topic(self, clean_env):
        clean_env.setenv("ARCHIVE_BACKEND", "local")
        clean_env.setenv("MQTT_TOPIC", "  ")

        with pytest.raises(ConfigurationError, match="MQTT_TOPIC"):
            Settings()

    def test_errors_are_collected(self, clean_env):
        clean_env.setenv("ENABLE_NOTIFICATION_SERVICE", "1")

        with pytest.raises(ConfigurationError) as exc_info:
            Settings()

        message = str(exc_info.value)
        assert "BOT_TOKEN, TELEGRAM_CHAT_IDS" in message
        assert "AWS_S3_BUCKET" in message

    @pytest.mark.parametrize(
        "field,value",
        [
            ("moisture_threshold", 101),
            ("moisture_threshold", -1),
            ("mqtt_port", 0),
            ("alert_delay_sec", -5),
            ("archive_max_retries", 0),
            ("alert_policy", "sometimes"),
            ("telegram_api_url", "not a url"),
        ],
    )
    def test_field_bounds(self, clean_env, field, value):
        with pytest.raises(ValidationError):
            Settings(archive_backend=ArchiveBackend.LOCAL, **{field: value})


class TestGetSettings:
    def test_override(self, db_file):
        custom = Settings(db_path=str(db_file), archive_backend="local")
        set_settings(custom)
        assert get_settings() is custom

    def test_cached_when_not_overridden(self, clean_env):
        clean_env.setenv("ARCHIVE_BACKEND", "local")
        set_settings(None)
        _load_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            _load_settings.cache_clear()
