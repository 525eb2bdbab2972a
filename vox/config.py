"""
vox.config - YAML config loading, override merging, validation.

Handles loading vox.yaml (from the working directory or an explicit path),
merging CLI overrides over it, and validating all parameters. The resolved
VoxConfig is passed explicitly to every component.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from vox.exceptions import ConfigError

CONFIG_FILENAME = "vox.yaml"
API_KEY_ENV_VARS = ("OPENAI_API_KEY", "VOX_OPENAI_API_KEY")


class ExtractionSettings(BaseModel):
    """Audio extraction parameters."""

    prefer_native: bool = True
    timeout_seconds: float = Field(default=300.0, gt=0.0)
    poll_interval: float = Field(default=0.1, gt=0.0)
    estimator_interval: float = Field(default=0.5, gt=0.0)
    ffmpeg_path: str | None = None
    temp_dir: Path | None = None


class QualitySettings(BaseModel):
    """Confidence thresholds for accepting a transcription."""

    min_acceptable_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    warning_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    fallback_threshold: float = Field(default=0.25, ge=0.0, le=1.0)
    segment_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    max_low_confidence_share: float = Field(default=0.3, ge=0.0, le=1.0)


class TranscriptionSettings(BaseModel):
    """On-device transcription and language selection."""

    backends: list[str] = Field(default_factory=lambda: ["faster"])
    model: str = "base"
    language: str | None = None
    fallback_locale: str = "en-US"
    attempt_timeout: float = Field(default=300.0, gt=0.0)
    force_cloud: bool = False
    remote_fallback: bool = True
    quality: QualitySettings = Field(default_factory=QualitySettings)

    @field_validator("backends")
    @classmethod
    def validate_backends(cls, v: list[str]) -> list[str]:
        valid = {"faster", "mlx"}
        unknown = [b for b in v if b not in valid]
        if unknown:
            raise ValueError(f"backends must be drawn from: {valid}")
        return v


class RemoteSettings(BaseModel):
    """Cloud Whisper API client parameters."""

    endpoint: str = "https://api.openai.com/v1/audio/transcriptions"
    model: str = "whisper-1"
    api_key: str | None = None
    max_payload_bytes: int = Field(default=25 * 1024 * 1024, gt=0)
    max_retries: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, ge=0.0)
    rate_limit_delay: float = Field(default=1.0, ge=0.0)
    min_request_interval: float = Field(default=1.0, ge=0.0)
    request_timeout: float = Field(default=120.0, gt=0.0)
    include_timestamps: bool = True

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("endpoint must be an http(s) URL")
        return v


class OutputSettings(BaseModel):
    """Output format and atomic writer options."""

    format: str = "txt"
    include_timestamps: bool = False
    enable_backup: bool = True
    validate_space: bool = True
    create_directories: bool = True
    space_multiplier: float = Field(default=2.0, ge=1.0)

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        valid = {"txt", "srt", "json"}
        if v not in valid:
            raise ValueError(f"format must be one of: {valid}")
        return v


class VoxConfig(BaseModel):
    """Resolved configuration for a Vox run."""

    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    transcription: TranscriptionSettings = Field(default_factory=TranscriptionSettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)

    config_path: Path | None = None


def merge_config(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Merge overrides into base config. Non-None override values take precedence."""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        elif isinstance(value, dict):
            merged[key] = merge_config({}, value)
        elif value is not None:
            merged[key] = value
    return merged


def load_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> VoxConfig:
    """Load and validate configuration.

    Args:
        config_path: Explicit YAML file; defaults to ./vox.yaml when present
        overrides: Nested dict of values (e.g. from CLI flags) applied on top

    Returns:
        Validated VoxConfig

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    raw: dict[str, Any] = {}
    path = config_path
    if path is None:
        candidate = Path.cwd() / CONFIG_FILENAME
        path = candidate if candidate.exists() else None
    elif not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    if path is not None:
        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"Config {path} must contain a mapping")

    merged = merge_config(raw, overrides or {})
    if path is not None:
        merged["config_path"] = path

    try:
        return VoxConfig(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def resolve_api_key(config: VoxConfig) -> str | None:
    """Return the API key from config, else from the environment."""
    if config.remote.api_key:
        return config.remote.api_key
    for var in API_KEY_ENV_VARS:
        value = os.environ.get(var)
        if value:
            return value
    return None


def write_config(config: VoxConfig, path: Path) -> None:
    """Write configuration to a YAML file, omitting the API key."""
    data = config.model_dump(mode="json", exclude={"config_path"})
    data["remote"].pop("api_key", None)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
