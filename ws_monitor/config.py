"""
Configuration management for the websocket endpoint monitor.
"""

from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from loguru import logger
from typing import Dict, Any

DEFAULT_MONITOR_URL = "wss://mainnet.liberland.org"


class MonitorConfig(BaseSettings):
    """Immutable configuration of the monitor, fixed at startup."""

    # Monitored endpoint
    monitor_url: str = Field(
        default=DEFAULT_MONITOR_URL,
        description="WebSocket URL of the node to monitor (ws:// or wss://)",
        validation_alias='MONITOR_URL'
    )

    # Probe timing
    monitor_interval: float = Field(
        default=60,
        description="Interval between connection checks in seconds",
        gt=0,
        validation_alias='MONITOR_INTERVAL'
    )
    monitor_connection_timeout: float = Field(
        default=5,
        description="Timeout for establishing the websocket connection in seconds",
        gt=0,
        validation_alias='MONITOR_CONNECTION_TIMEOUT'
    )
    monitor_request_timeout: float = Field(
        default=5,
        description="Timeout for the RPC request in seconds",
        gt=0,
        validation_alias='MONITOR_REQUEST_TIMEOUT'
    )

    # Metrics endpoint
    server_addr: str = Field(
        default="0.0.0.0",
        description="Bind address of the metrics HTTP server",
        validation_alias='SERVER_ADDR'
    )
    server_port: int = Field(
        default=3000,
        description="Port of the metrics HTTP server",
        ge=0,  # 0 binds an ephemeral port
        le=65535,
        validation_alias='SERVER_PORT'
    )

    verbose: bool = Field(
        default=False,
        description="Log at DEBUG instead of INFO",
        validation_alias='VERBOSE'
    )

    @field_validator('monitor_url')
    @classmethod
    def validate_monitor_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('monitor_url cannot be empty')
        parts = urlsplit(v)
        if parts.scheme not in ('ws', 'wss') or not parts.netloc:
            raise ValueError('monitor_url must be a ws:// or wss:// URL')
        return v

    @field_validator('server_addr')
    @classmethod
    def validate_server_addr(cls, v: str) -> str:
        if not v or len(v.strip()) == 0:
            raise ValueError('server_addr cannot be empty')
        return v.strip()

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        frozen=True,
        validate_by_name=True,  # Allow field names
        validate_by_alias=True  # Allow aliases (env vars)
    )


def load_config(**overrides: Any) -> MonitorConfig:
    """
    Load and validate configuration from the environment.

    Args:
        **overrides: Field values taking precedence over the environment.
            None values are ignored so unset CLI flags fall through.

    Returns:
        MonitorConfig: Validated configuration object

    Raises:
        ValueError: If configuration validation fails
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return MonitorConfig(**values)
    except Exception as e:
        error_msg = f"Configuration validation failed: {str(e)}"
        logger.error(error_msg)
        raise ValueError(error_msg)


def config_to_dict(config: MonitorConfig) -> Dict[str, Any]:
    """
    Convert MonitorConfig to a plain dictionary.

    Args:
        config: MonitorConfig instance

    Returns:
        Dict containing configuration values
    """
    return config.model_dump()
