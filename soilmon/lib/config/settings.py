"""Settings models and configuration loading for the soil monitor."""

from functools import cached_property, lru_cache
from typing import Annotated, Any, Self

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    HttpUrl,
    SecretStr,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from soilmon.lib.config.enums import AlertPolicy, ArchiveBackend
from soilmon.lib.exceptions import ConfigurationError

# Moisture is reported as an integer percentage
MOISTURE_BOUNDS = (0, 100)


def _parse_bool(v: Any) -> bool:
    """Parse boolean from string '1'/'0' or actual bool."""
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v == "1"
    return bool(v)


def _validate_http_url(v: str) -> str:
    """Validate HTTP URL format and drop any trailing slash."""
    HttpUrl(v)
    return v.rstrip("/")


_BoolFromStr = Annotated[bool, BeforeValidator(_parse_bool)]
_HttpUrlStr = Annotated[str, AfterValidator(_validate_http_url)]


def parse_chat_ids(raw: str) -> list[str]:
    """Split a comma-separated list of chat ids, ignoring blanks."""
    return [c.strip() for c in raw.split(",") if c.strip()]


class MqttSettings(BaseModel):
    """MQTT broker subscription settings."""

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = 1883
    topic: str = "sensor/moisture/levels"
    client_id: str = "soil-monitor"
    username: str = ""
    password: SecretStr = SecretStr("")
    keepalive_sec: int = 60
    connect_timeout_sec: float = 10.0


class ServerSettings(BaseModel):
    """Live feed WebSocket server settings."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8080


class IngestSettings(BaseModel):
    """Payload validation settings."""

    model_config = ConfigDict(frozen=True)

    sensor_id_max_length: int = 64


class AlertSettings(BaseModel):
    """Low moisture alerting settings."""

    model_config = ConfigDict(frozen=True)

    policy: AlertPolicy = AlertPolicy.SUSTAINED
    threshold: int = 25
    delay_sec: int = 300
    interval_sec: int = 300


class TelegramSettings(BaseModel):
    """Telegram bot notification settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    bot_token: SecretStr = SecretStr("")
    chat_ids: list[str] = []
    api_url: str = "https://api.telegram.org"
    verify_tls: bool = True
    timeout_sec: int = 30


class S3Settings(BaseModel):
    """AWS S3 bucket settings."""

    model_config = ConfigDict(frozen=True)

    bucket: str = ""
    region: str = ""
    access_key_id: str = ""
    secret_access_key: SecretStr = SecretStr("")


class ArchiveSettings(BaseModel):
    """Periodic archival settings."""

    model_config = ConfigDict(frozen=True)

    backend: ArchiveBackend = ArchiveBackend.S3
    period_sec: int = 3600
    key_prefix: str = "moisture-data"
    local_path: str = "archive"
    max_retries: int = 3
    initial_backoff_sec: float = 2.0
    s3: S3Settings = S3Settings()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    db_path: str = "moisture.db"
    db_timeout_sec: float = 30.0

    # MQTT
    mqtt_host: str = "localhost"
    mqtt_port: int = Field(default=1883, gt=0, le=65535)
    mqtt_topic: str = "sensor/moisture/levels"
    mqtt_client_id: str = "soil-monitor"
    mqtt_username: str = ""
    mqtt_password: SecretStr = SecretStr("")
    mqtt_keepalive_sec: int = Field(default=60, ge=5)
    mqtt_connect_timeout_sec: float = Field(default=10.0, gt=0)

    # Live feed
    ws_host: str = "0.0.0.0"
    ws_port: int = Field(default=8080, gt=0, le=65535)

    # Validation
    sensor_id_max_length: int = Field(default=64, ge=1)

    # Alerting
    moisture_threshold: int = Field(default=25, ge=0, le=100)
    alert_policy: AlertPolicy = AlertPolicy.SUSTAINED
    alert_delay_sec: int = Field(default=300, ge=0)
    alert_interval_sec: int = Field(default=300, ge=0)

    # Notifications
    enable_notification_service: _BoolFromStr = False
    bot_token: SecretStr = SecretStr("")
    telegram_chat_ids: str = ""  # Comma-separated list
    telegram_api_url: _HttpUrlStr = "https://api.telegram.org"
    telegram_verify_tls: _BoolFromStr = True
    telegram_timeout_sec: int = Field(default=30, ge=1)

    # Archival
    archive_backend: ArchiveBackend = ArchiveBackend.S3
    archive_period_sec: int = Field(default=3600, ge=1)
    archive_key_prefix: str = "moisture-data"
    archive_local_path: str = "archive"
    archive_max_retries: int = Field(default=3, ge=1)
    archive_initial_backoff_sec: float = Field(default=2.0, ge=0)
    aws_s3_bucket: str = ""
    aws_region: str = ""
    aws_access_key_id: str = ""
    aws_secret_access_key: SecretStr = SecretStr("")

    @cached_property
    def mqtt(self) -> MqttSettings:
        """Get MQTT settings as nested object."""
        return MqttSettings(
            host=self.mqtt_host,
            port=self.mqtt_port,
            topic=self.mqtt_topic,
            client_id=self.mqtt_client_id,
            username=self.mqtt_username,
            password=self.mqtt_password,
            keepalive_sec=self.mqtt_keepalive_sec,
            connect_timeout_sec=self.mqtt_connect_timeout_sec,
        )

    @cached_property
    def server(self) -> ServerSettings:
        """Get live feed server settings."""
        return ServerSettings(host=self.ws_host, port=self.ws_port)

    @cached_property
    def ingest(self) -> IngestSettings:
        """Get payload validation settings."""
        return IngestSettings(sensor_id_max_length=self.sensor_id_max_length)

    @cached_property
    def alerts(self) -> AlertSettings:
        """Get alert behavior settings."""
        return AlertSettings(
            policy=self.alert_policy,
            threshold=self.moisture_threshold,
            delay_sec=self.alert_delay_sec,
            interval_sec=self.alert_interval_sec,
        )

    @cached_property
    def telegram(self) -> TelegramSettings:
        """Get Telegram notification settings."""
        return TelegramSettings(
            enabled=self.enable_notification_service,
            bot_token=self.bot_token,
            chat_ids=parse_chat_ids(self.telegram_chat_ids),
            api_url=self.telegram_api_url,
            verify_tls=self.telegram_verify_tls,
            timeout_sec=self.telegram_timeout_sec,
        )

    @cached_property
    def archive(self) -> ArchiveSettings:
        """Get archival settings as nested object."""
        return ArchiveSettings(
            backend=self.archive_backend,
            period_sec=self.archive_period_sec,
            key_prefix=self.archive_key_prefix,
            local_path=self.archive_local_path,
            max_retries=self.archive_max_retries,
            initial_backoff_sec=self.archive_initial_backoff_sec,
            s3=S3Settings(
                bucket=self.aws_s3_bucket,
                region=self.aws_region,
                access_key_id=self.aws_access_key_id,
                secret_access_key=self.aws_secret_access_key,
            ),
        )

    @model_validator(mode="after")
    def validate_settings(self) -> Self:
        """Validate cross-field configuration constraints."""
        errors: list[str] = []

        if self.enable_notification_service:
            missing = []
            if not self.bot_token.get_secret_value():
                missing.append("BOT_TOKEN")
            if not parse_chat_ids(self.telegram_chat_ids):
                missing.append("TELEGRAM_CHAT_IDS")
            if missing:
                errors.append(
                    f"Notifications enabled but missing: {', '.join(missing)}"
                )

        if self.archive_backend == ArchiveBackend.S3 and not self.aws_s3_bucket:
            errors.append("S3 archive backend selected but AWS_S3_BUCKET is not set")

        if not self.mqtt_topic.strip():
            errors.append("MQTT_TOPIC must not be empty")

        if errors:
            raise ConfigurationError(
                "Configuration validation failed:\n  - "
                + "\n  - ".join(errors)
            )

        return self


# Settings override for testing - allows injecting custom Settings without
# modifying environment variables or clearing the lru_cache.
_settings_override: Settings | None = None


@lru_cache(maxsize=1)
def _load_settings() -> Settings:
    """Load settings from environment (cached)."""
    return Settings()


def get_settings() -> Settings:
    """Get the global settings instance.

    Returns the test override if set, otherwise loads from environment
    variables (cached after first load). For testing, use set_settings()
    from soilmon.lib.config.testing to override.
    """
    if _settings_override is not None:
        return _settings_override
    return _load_settings()
