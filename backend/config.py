"""
Configuration management using Pydantic

This module provides application-wide configuration using Pydantic BaseSettings
with support for environment variables and type validation.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """
    Application configuration settings.

    All settings can be overridden using environment variables.
    For example, WINDOW_SIZE will override window_size.
    """

    model_config = SettingsConfigDict(
        env_file="backend/.env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    backend_host: str = Field(default="localhost", description="Backend server host")
    backend_port: int = Field(default=8000, ge=1, le=65535, description="Backend server port")
    allowed_origins: List[str] = Field(
        default=["*"],
        description="CORS allowed origins"
    )

    # Instrument and market window
    symbol: str = Field(
        default="BTCUSDT",
        pattern=r"^[A-Z0-9]{3,20}$",
        description="Instrument traded by the simulator"
    )
    window_size: int = Field(
        default=50,
        ge=1,
        description="Number of most recent ticks kept in the market window"
    )

    # Price feed
    feed_enabled: bool = Field(
        default=True,
        description="Connect to the live price feed on startup"
    )
    feed_base_url: str = Field(
        default="wss://fstream.binance.com/ws",
        description="Base URL of the aggregated-trade market data socket"
    )
    feed_max_reconnect_attempts: int = Field(
        default=5,
        ge=0,
        description="Reconnect attempts before the feed is reported unavailable"
    )
    feed_reconnect_base_delay: float = Field(
        default=1.0,
        ge=0,
        description="Base delay in seconds for exponential reconnect backoff"
    )

    # Order handling
    order_acceptance_delay_ms: int = Field(
        default=300,
        ge=0,
        description="Simulated latency before a submitted order reaches the book"
    )
    max_fill_journal_size: int = Field(
        default=10000,
        ge=1,
        description="Number of fills kept in the in-memory journal"
    )

    # Advisory gateway
    gemini_api_key: Optional[str] = Field(
        default=None,
        description="API key for the Gemini generateContent endpoint"
    )
    advisory_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the text-generation API"
    )
    advisory_model: str = Field(
        default="gemini-2.5-flash",
        description="Model used for commentary and code generation"
    )
    advisory_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Timeout in seconds for a single advisory call"
    )
    analysis_min_ticks: int = Field(
        default=10,
        ge=1,
        description="Minimum ticks in the window before trend analysis is attempted"
    )
    analysis_sample_size: int = Field(
        default=20,
        ge=1,
        description="Number of most recent prices sent for trend analysis"
    )

    # WebSocket Configuration
    ws_heartbeat_interval: int = Field(
        default=30,
        description="WebSocket heartbeat interval in seconds"
    )
    stream_poll_interval: float = Field(
        default=0.25,
        gt=0,
        description="Interval in seconds between market window broadcasts"
    )
    event_history_size: int = Field(
        default=100,
        ge=1,
        description="Number of recent events sent to a new event stream subscriber"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_dir: Optional[str] = Field(
        default=None,
        description="Directory for log files (console only when unset)"
    )
    log_json: bool = Field(
        default=False,
        description="Emit structured JSON log lines"
    )


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """
    Get the global settings instance.

    Returns:
        Settings instance
    """
    return settings
