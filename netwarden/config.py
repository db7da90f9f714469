"""
NetWarden Configuration Module

Centralized configuration management using pydantic-settings.
Loads settings from environment variables and .env files.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Find the project root (where .env is located)
_PROJECT_ROOT = Path(__file__).parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")

    # ==========================================================================
    # Classification (LLM)
    # ==========================================================================
    openrouter_api_key: str = Field(
        default="",
        description="OpenRouter API key for finding classification",
    )
    llm_model_classification: str = Field(
        default="meta-llama/llama-3.3-70b-instruct:free",
        description="Model used to classify anomaly findings",
    )
    llm_timeout_default: int = Field(
        default=60,
        description="Timeout for LLM requests (seconds)",
    )

    # ==========================================================================
    # Packet Capture
    # ==========================================================================
    capture_tool: str = Field(
        default="tcpdump",
        description="Packet capture binary",
    )
    capture_interface: str = Field(
        default="eth0",
        description="Preferred capture interface",
    )
    capture_fallback_interface: str = Field(
        default="any",
        description="Catch-all interface used when the preferred one is missing",
    )
    capture_start_timeout: float = Field(
        default=10.0,
        description="Seconds to wait for the capture tool to start listening",
    )
    capture_stop_timeout: float = Field(
        default=5.0,
        description="Seconds to wait after SIGTERM before killing the capture tool",
    )
    capture_user: str = Field(
        default="",
        description="User the capture tool drops privileges to (-Z); empty keeps its default",
    )

    # ==========================================================================
    # Monitoring Configuration
    # ==========================================================================
    scan_duration_seconds: float = Field(
        default=30.0,
        description="Capture window for a single scan cycle",
    )
    baseline_duration_seconds: float = Field(
        default=120.0,
        description="Capture window used to establish a target baseline",
    )
    anomaly_factor: float = Field(
        default=2.0,
        description="Multiplier over baseline beyond which a metric is anomalous",
    )
    default_interval_minutes: float = Field(
        default=5.0,
        description="Default interval between scan cycles",
    )

    # ==========================================================================
    # Host Survey
    # ==========================================================================
    survey_enabled: bool = Field(
        default=True,
        description="Ping and port-scan each target after its scan window",
    )
    ping_tool: str = Field(default="ping", description="Reachability check binary")
    ping_count: int = Field(default=4, description="Echo requests per reachability check")
    ping_timeout_seconds: int = Field(
        default=2,
        description="Seconds ping waits for each reply",
    )
    port_scan_enabled: bool = Field(
        default=True,
        description="Run an open-port sweep as part of the survey",
    )
    port_scan_tool: str = Field(default="nmap", description="Port scan binary")
    port_scan_range: str = Field(
        default="20-1000",
        description="TCP port range swept for open ports",
    )
    survey_timeout_seconds: float = Field(
        default=120.0,
        description="Upper bound on a single survey tool run",
    )
    survey_max_open_ports: int = Field(
        default=5,
        description="Open ports tolerated before commonly attacked ones are flagged",
    )

    # ==========================================================================
    # Capture Readback
    # ==========================================================================
    parse_max_records: int = Field(
        default=100_000,
        description="Maximum packets read back from one capture artifact",
    )
    parse_fallback_records: int = Field(
        default=10_000,
        description="Reduced packet cap used after an output overflow",
    )
    readback_max_output_bytes: int = Field(
        default=10 * 1024 * 1024,  # 10MB
        description="Maximum readback output before retrying with a smaller cap",
    )

    # ==========================================================================
    # Logging Configuration
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="json",
        description="Log output format",
    )

    # ==========================================================================
    # Paths
    # ==========================================================================
    temp_dir: Path = Field(
        default=Path("/tmp/netwarden"),
        description="Directory for capture artifacts",
    )
    findings_path: Path = Field(
        default=Path("netwarden_findings.jsonl"),
        description="JSON-lines file the default finding store appends to",
    )

    @field_validator("temp_dir", "findings_path", mode="before")
    @classmethod
    def ensure_path(cls, v: str | Path) -> Path:
        """Ensure path settings are Path objects."""
        return Path(v) if isinstance(v, str) else v

    @field_validator(
        "capture_start_timeout",
        "capture_stop_timeout",
        "scan_duration_seconds",
        "baseline_duration_seconds",
        "default_interval_minutes",
        "survey_timeout_seconds",
        "ping_count",
        "ping_timeout_seconds",
    )
    @classmethod
    def ensure_positive(cls, v: float) -> float:
        """Durations and counts must be positive."""
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("anomaly_factor")
    @classmethod
    def ensure_factor(cls, v: float) -> float:
        """A factor at or below 1 would flag normal traffic."""
        if v <= 1.0:
            raise ValueError("anomaly_factor must be greater than 1.0")
        return v

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @property
    def has_openrouter(self) -> bool:
        """Check if OpenRouter API key is configured."""
        return bool(self.openrouter_api_key)

    def ensure_temp_dir(self) -> Path:
        """Create temp directory if it doesn't exist."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        return self.temp_dir


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience alias
settings = get_settings()
