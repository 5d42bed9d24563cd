"""Configuration loading and Pydantic models for b2fs."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class B2Config(BaseModel):
    """Backblaze B2 account and bucket configuration."""

    key_id: str = ""
    application_key: str = ""
    bucket: str = ""
    prefix: str = ""
    api_url: str = "https://api.backblazeb2.com"
    timeout: float = 60.0


class UploadConfig(BaseModel):
    """Large-file upload tuning."""

    part_size: int = 10_000_000
    min_part_size: int = 5_000_000
    concurrency: int = Field(default=1, ge=1)


class StoreConfig(BaseModel):
    """Which store client to build."""

    backend: str = "b2"


class LoggingConfig(BaseModel):
    """Log level and output format."""

    level: str = "INFO"
    format: str = "text"


class MetricsConfig(BaseModel):
    """Prometheus metrics configuration."""

    enabled: bool = False
    port: int = 9108


class B2FSConfig(BaseModel):
    """Top-level b2fs configuration."""

    b2: B2Config = Field(default_factory=B2Config)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


def _parse_b2(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the b2 section from YAML data.

    Handles nested structure: b2.credentials.key_id -> key_id, and fills
    empty credentials from B2_KEY_ID / B2_APPLICATION_KEY.
    """
    data = data or {}
    result: dict[str, Any] = {
        "bucket": data.get("bucket", ""),
        "prefix": data.get("prefix", ""),
        "api_url": data.get("api_url", "https://api.backblazeb2.com"),
        "timeout": data.get("timeout", 60.0),
    }
    credentials = data.get("credentials")
    if isinstance(credentials, dict):
        result["key_id"] = credentials.get("key_id", "")
        result["application_key"] = credentials.get("application_key", "")
    if not result.get("key_id"):
        result["key_id"] = os.environ.get("B2_KEY_ID", "")
    if not result.get("application_key"):
        result["application_key"] = os.environ.get("B2_APPLICATION_KEY", "")
    return result


def _parse_upload(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the upload section from YAML data."""
    if data is None:
        return {}
    return {
        "part_size": data.get("part_size", 10_000_000),
        "min_part_size": data.get("min_part_size", 5_000_000),
        "concurrency": data.get("concurrency", 1),
    }


def _parse_store(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the store section from YAML data."""
    if data is None:
        return {}
    return {"backend": data.get("backend", "b2")}


def _parse_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the logging section from YAML data."""
    if data is None:
        return {}
    return {
        "level": data.get("level", "INFO"),
        "format": data.get("format", "text"),
    }


def _parse_metrics(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the metrics section from YAML data."""
    if data is None:
        return {}
    return {
        "enabled": data.get("enabled", False),
        "port": data.get("port", 9108),
    }


def load_config(path: Path) -> B2FSConfig:
    """Load a B2FSConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated B2FSConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return B2FSConfig(
        b2=B2Config(**_parse_b2(raw.get("b2"))),
        upload=UploadConfig(**_parse_upload(raw.get("upload"))),
        store=StoreConfig(**_parse_store(raw.get("store"))),
        logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
        metrics=MetricsConfig(**_parse_metrics(raw.get("metrics"))),
    )
