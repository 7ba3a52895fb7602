"""Configuration management for dropwatch."""

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from dropwatch.api import DEFAULT_API_BASE


class DigitalOceanConfig(BaseModel):
    """DigitalOcean API configuration."""

    model_config = ConfigDict(extra="forbid")

    api_base: str = Field(default=DEFAULT_API_BASE, description="API base URL")
    timeout: float = Field(default=30, ge=1, description="Timeout in seconds per HTTP request")

    @field_validator("api_base")
    @classmethod
    def api_base_is_http(cls, v: str) -> str:
        """Validate the base URL is an http(s) URL."""
        v = v.strip()
        if not v.startswith(("https://", "http://")):
            raise ValueError("api_base must start with http:// or https://")
        return v.rstrip("/")


class SchedulerConfig(BaseModel):
    """Timing and reporting settings for the snapshot scheduler."""

    model_config = ConfigDict(extra="forbid")

    poll_interval: float = Field(default=10, ge=0, description="Seconds between status polls")
    power_off_attempts: int = Field(
        default=12, ge=1, description="Status polls before giving up on power off"
    )
    snapshot_attempts: int = Field(
        default=30, ge=1, description="Action polls before giving up on the snapshot"
    )
    snapshot_suffix: str = Field(
        default="_snapshot", min_length=1, description="Appended to the droplet name"
    )
    error_message_limit: int = Field(
        default=200, ge=1, description="Stop collecting error messages past this length"
    )


class DropwatchConfig(BaseModel):
    """Main dropwatch configuration."""

    model_config = ConfigDict(extra="forbid")

    digitalocean: DigitalOceanConfig = Field(default_factory=DigitalOceanConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)


class Config:
    """Manages dropwatch configuration with Pydantic validation.

    The config file is optional. Without one every setting keeps its
    default; the API token is never read from it.
    """

    CONFIG_DIR = Path.home() / ".config" / "dropwatch"
    CONFIG_FILE = CONFIG_DIR / "config.yaml"

    def __init__(self, path: Path | None = None):
        """Initialize config manager, optionally for a non-default file."""
        self.path = path if path is not None else self.CONFIG_FILE
        self._explicit = path is not None
        self._config: DropwatchConfig | None = None

    @property
    def config(self) -> DropwatchConfig:
        """Get the validated configuration."""
        if self._config is None:
            raise ValueError("Configuration not loaded. Call load() first.")
        return self._config

    def load(self) -> None:
        """
        Load and validate configuration from file.

        Raises:
            FileNotFoundError: If an explicitly given file does not exist
            pydantic.ValidationError: If the file content is invalid
        """
        if not self.path.exists():
            if self._explicit:
                raise FileNotFoundError(f"Config file not found at {self.path}")
            self._config = DropwatchConfig()
            return

        with open(self.path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file {self.path} must contain a mapping")

        self._config = DropwatchConfig(**data)
