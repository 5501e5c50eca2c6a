import logging
import os
import sys
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict
from typing_extensions import Self

from airgap.domain.bundle.model.value import BundleSettings, Compression
from airgap.domain.shared.error import ConfigError
from airgap.domain.shared.retry import RetryPolicy

CONFIG_FILE_ENV = "AIRGAP_CONFIG_FILE"
LOG_FILE_ENV = "AIRGAP_LOG_FILE"


# =============================================================================
# Bundle Configuration
# =============================================================================


class RetryConfig(BaseModel):
    """Backoff for image pulls."""

    max_attempts: int = Field(default=5, ge=1)
    base_delay: float = Field(default=1.0, ge=0)  # seconds
    max_delay: float = Field(default=20.0, ge=0)  # seconds
    jitter: bool = False

    @model_validator(mode="after")
    def _cap_not_below_base(self) -> Self:
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        return self

    def policy(self) -> RetryPolicy:
        return RetryPolicy(**self.model_dump())


class BundleConfig(BaseModel):
    pull_concurrency: int = Field(default=1, ge=1)  # 1 = sequential pulls
    require_checksum: bool = False  # refuse to load bundles without a record
    versions_file: Path | None = None  # e.g. versions.env; snapshotted into bundles
    package: bool = False  # also write <bundle>.tar.gz beside the bundle directory


# =============================================================================
# Application Configuration
# =============================================================================


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Load settings from YAML file specified by AIRGAP_CONFIG_FILE env var."""

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Get the value for a field from the YAML config."""
        yaml_data = self._load_yaml_config()
        field_value = yaml_data.get(field_name)
        return field_value, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return all settings from YAML file."""
        return self._load_yaml_config()

    def _load_yaml_config(self) -> dict[str, Any]:
        """Load config from YAML file if specified."""
        config_file = os.environ.get(CONFIG_FILE_ENV)
        if config_file:
            path = Path(config_file).expanduser()
            if path.exists():
                return yaml.safe_load(path.read_text()) or {}
        return {}


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    @property
    def file(self) -> str | None:
        """Get log file path from AIRGAP_LOG_FILE env var."""
        return os.environ.get(LOG_FILE_ENV)


class Config(BaseSettings):
    compression: Compression = Compression.GZIP
    verify_after_load: bool = False  # list runtime images after a load
    runtime: Literal["auto", "docker", "podman"] = "auto"
    retry: RetryConfig = RetryConfig()
    bundle: BundleConfig = BundleConfig()
    logging: LoggingConfig = LoggingConfig()

    model_config = SettingsConfigDict(
        env_prefix="AIRGAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",  # Allows AIRGAP_RETRY__MAX_ATTEMPTS override
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources to include YAML config.

        Priority (highest to lowest):
        1. init_settings - values passed to Config()
        2. env_settings - environment variables
        3. dotenv_settings - .env file
        4. yaml_settings - AIRGAP_CONFIG_FILE yaml
        5. file_secret_settings - secrets from files
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    def bundle_settings(self, **overrides: Any) -> BundleSettings:
        """Freeze the effective configuration into the value handed to services.

        `overrides` (typically CLI flags) win; None values are ignored.

        Raises:
            ConfigError: if the combined values are invalid.
        """
        try:
            values: dict[str, Any] = {
                "compression": self.compression,
                "retry": self.retry.policy(),
                "pull_concurrency": self.bundle.pull_concurrency,
                "verify_after_load": self.verify_after_load,
                "require_checksum": self.bundle.require_checksum,
                "versions_file": self.bundle.versions_file,
                "package": self.bundle.package,
            }
            values.update({k: v for k, v in overrides.items() if v is not None})
            return BundleSettings(**values)
        except ValidationError as e:
            raise ConfigError(f"Invalid settings: {describe_validation_error(e)}") from e


def describe_validation_error(error: ValidationError) -> str:
    """One entry per failed field, e.g. ``retry.max_attempts: Input should be ...``."""
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'value'}: {err['msg']}"
        for err in error.errors()
    )


def load_config() -> Config:
    """Build the Config from environment, .env and YAML file.

    Raises:
        ConfigError: if any value is invalid or the YAML file cannot be parsed.
    """
    try:
        return Config()
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {describe_validation_error(e)}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid configuration file: {e}") from e


def configure_logging(config: LoggingConfig) -> None:
    """Configure Python logging based on config.

    Should be called once at CLI startup, before any command runs.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(config.level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(config.format, datefmt=config.date_format)

    if config.file:
        log_path = Path(config.file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(config.level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    else:
        # stdout carries command results; diagnostics go to stderr.
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(config.level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logging.debug("Logging configured: level=%s, file=%s", config.level, config.file)
