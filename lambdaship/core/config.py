"""
lambdaship configuration.

Tool settings come from LAMBDASHIP_* environment variables (or a .env file)
through pydantic-settings. Per-project settings (function aliases, extra
targets, default container environment) live in an optional Lambda.yml (or a legacy Lambda.toml).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import toml
import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from lambdaship.core.errors import InvalidFunctionIdentifier
from lambdaship.core.targets import TargetSpec, target_specs_from_config

PROJECT_CONFIG_NAME = "Lambda.yml"
# Older projects keep their [arns] table in TOML next to Cargo.toml.
LEGACY_PROJECT_CONFIG_NAME = "Lambda.toml"


class Settings(BaseSettings):
    """Tool settings."""

    LOG_LEVEL: str = Field(default="INFO", description="Log level")
    LOG_CONFIG: str = Field(default="", description="Optional logging dictConfig YAML path")

    # Build
    DOCKER_BIN: str = Field(default="docker", description="docker CLI executable")
    DOCKER_IMAGE: str = Field(default="", description="Build image override for every target")
    CONTAINER_CODE_DIR: str = Field(default="/code", description="Project mount point in the build container")
    ARCHIVE_ENTRY_NAME: str = Field(default="bootstrap", description="Entry name inside the archive")

    # Deploy
    DEPLOY_MAX_ATTEMPTS: int = Field(default=3, ge=1, description="Attempts for transient failures")
    DEPLOY_BACKOFF_BASE: float = Field(default=1.0, ge=0, description="First retry delay (seconds)")
    DEPLOY_BACKOFF_MAX: float = Field(default=8.0, ge=0, description="Retry delay ceiling (seconds)")
    CONNECT_TIMEOUT: float = Field(default=10.0, description="Lambda API connect timeout (seconds)")
    READ_TIMEOUT: float = Field(default=120.0, description="Lambda API read timeout (seconds)")

    # Logs
    LOG_POLL_INTERVAL: float = Field(default=3.0, description="CloudWatch poll interval (seconds)")

    PROJECT_CONFIG: str = Field(default=PROJECT_CONFIG_NAME, description="Project config file name")

    model_config = SettingsConfigDict(
        env_prefix="LAMBDASHIP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@dataclass(frozen=True)
class ProjectConfig:
    arns: dict[str, str] = field(default_factory=dict)
    targets: dict[str, TargetSpec] = field(default_factory=dict)
    env: tuple[str, ...] = ()


def load_project_config(path: Path) -> ProjectConfig:
    """Load Lambda.yml, falling back to a sibling Lambda.toml; no file yields an empty config."""
    path = Path(path)
    if path.is_file():
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    else:
        legacy = path.with_name(LEGACY_PROJECT_CONFIG_NAME)
        if not legacy.is_file():
            return ProjectConfig()
        try:
            raw = toml.loads(legacy.read_text(encoding="utf-8"))
        except toml.TomlDecodeError as exc:
            raise ValueError(f"Can't parse {legacy}: {exc}") from exc
        path = legacy

    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping")

    arns = raw.get("arns") or {}
    if not isinstance(arns, dict):
        raise ValueError(f"{path}: 'arns' must be a mapping of alias to function ARN")

    env = raw.get("env") or {}
    if isinstance(env, dict):
        env_items = tuple(f"{key}={value}" for key, value in env.items())
    elif isinstance(env, list):
        env_items = tuple(str(item) for item in env)
    else:
        raise ValueError(f"{path}: 'env' must be a mapping or a list of KEY=VALUE")

    return ProjectConfig(
        arns={str(key): str(value) for key, value in arns.items()},
        targets=target_specs_from_config(raw.get("targets")),
        env=env_items,
    )


def resolve_function(identifier: str, config: ProjectConfig) -> str:
    """Expand a Lambda.yml alias; anything else is passed through untouched."""
    identifier = (identifier or "").strip()
    if identifier == "":
        raise InvalidFunctionIdentifier("Function identifier must not be empty")
    return config.arns.get(identifier, identifier)


def region_from_arn(identifier: str) -> str | None:
    """Region of a full function ARN (arn:aws:lambda:<region>:<account>:function:<name>)."""
    parts = identifier.split(":")
    if len(parts) >= 7 and parts[0] == "arn" and parts[2] == "lambda" and parts[3]:
        return parts[3]
    return None


def function_name_from(identifier: str) -> str:
    parts = identifier.split(":")
    if len(parts) >= 7 and parts[0] == "arn":
        return parts[6]
    return identifier
