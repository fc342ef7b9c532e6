"""Configuration settings for NGSI Ingest components."""

from enum import Enum
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class MQTTTransport(str, Enum):
    """MQTT transport protocol options."""

    TCP = "tcp"
    WEBSOCKETS = "websockets"


class CommonSettings(BaseSettings):
    """Common settings shared by all components."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Data home directory (base for all service data)
    data_home: str = Field(
        default="./data",
        description="Base directory for service data (e.g., ./data or /data)",
    )

    # Logging
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")

    # MQTT Broker
    mqtt_host: str = Field(default="localhost", description="MQTT broker host")
    mqtt_port: int = Field(default=1883, description="MQTT broker port")
    mqtt_username: Optional[str] = Field(
        default=None, description="MQTT username (optional)"
    )
    mqtt_password: Optional[str] = Field(
        default=None, description="MQTT password (optional)"
    )
    mqtt_prefix: str = Field(
        default="json",
        description="First topic segment devices publish under (use '+' for any)",
    )
    mqtt_tls: bool = Field(
        default=False, description="Enable TLS/SSL for MQTT connection"
    )
    mqtt_transport: MQTTTransport = Field(
        default=MQTTTransport.TCP,
        description="MQTT transport protocol (tcp or websockets)",
    )
    mqtt_ws_path: str = Field(
        default="/mqtt",
        description="WebSocket path for MQTT transport",
    )
    mqtt_qos: int = Field(default=0, ge=0, le=2, description="MQTT QoS level")


class CollectorSettings(CommonSettings):
    """Settings for the collector component."""

    context_broker_url: str = Field(
        default="http://localhost:1026",
        description="Base URL of the NGSI-v2 context broker",
    )
    context_broker_timeout: float = Field(
        default=5.0,
        description="Timeout in seconds for context broker requests",
        gt=0,
    )

    default_resource: str = Field(
        default="",
        description="Resource used when resolving service groups for configuration",
    )
    default_transport: str = Field(
        default="MQTT",
        description="Transport used for configuration responses by default",
    )

    devices_file: Optional[str] = Field(
        default=None,
        description="YAML file with service groups and devices "
        "(default: {data_home}/collector/devices.yaml)",
    )

    worker_threads: int = Field(
        default=4,
        description="Worker threads processing incoming messages",
        ge=1,
    )

    metrics_port: int = Field(
        default=0,
        description="Port for the Prometheus metrics endpoint (0 disables it)",
        ge=0,
    )

    @property
    def collector_data_dir(self) -> str:
        """Get the collector data directory path."""
        from pathlib import Path

        return str(Path(self.data_home) / "collector")

    @property
    def effective_devices_file(self) -> str:
        """Get the effective device registry file path."""
        if self.devices_file:
            return self.devices_file

        from pathlib import Path

        return str(Path(self.collector_data_dir) / "devices.yaml")


def get_collector_settings() -> CollectorSettings:
    """Get collector settings instance."""
    return CollectorSettings()
