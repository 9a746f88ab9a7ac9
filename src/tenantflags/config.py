"""Feature command configuration loading and validation."""

from __future__ import annotations

import os
import re
import sys
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from tenantflags.errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path("~/.config/tenantflags/config.toml")
CONFIG_PATH_ENV = "TENANTFLAGS_CONFIG"
CONFIG_SECTION = "tenant_feature"
DEFAULT_RUNNER_EXECUTABLE = "bin/rails"
DEFAULT_ENVIRONMENT_PREFIX = "RAILS_ENV=development"
DEFAULT_SHELL_PATH = "/bin/bash"

REQUIRED_FIELDS = (
    "tenant_model",
    "tenant_switch_template",
    "enable_command",
    "disable_command",
    "check_command",
)

PLACEHOLDER_PATTERN = re.compile(r"%(%|s)")


def placeholder_count(template: str) -> int:
    """Count ``%s`` placeholders, ignoring ``%%`` escapes."""
    return sum(1 for match in PLACEHOLDER_PATTERN.finditer(template) if match.group(1) == "s")


def _require_text(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"configuration '{field_name}' is required but not defined")
    if "\n" in value or "\r" in value:
        raise ValueError(f"{field_name} must be a single line")
    return value


class FeatureConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    tenant_model: str
    tenant_switch_template: str
    enable_command: str
    disable_command: str
    check_command: str
    runner_executable: str = DEFAULT_RUNNER_EXECUTABLE
    environment_prefix: str = DEFAULT_ENVIRONMENT_PREFIX
    shell_path: str = DEFAULT_SHELL_PATH
    strict_status: bool = False

    @field_validator("tenant_model")
    @classmethod
    def _validate_tenant_model(cls, value: str) -> str:
        return _require_text(value, "tenant_model")

    @field_validator("tenant_switch_template")
    @classmethod
    def _validate_switch_template(cls, value: str) -> str:
        _require_text(value, "tenant_switch_template")
        count = placeholder_count(value)
        if count not in (1, 2):
            raise ValueError(
                f"tenant_switch_template needs 2 placeholders (tenant, command) or 1 (command), found {count}"
            )
        return value

    @field_validator("enable_command", "disable_command", "check_command")
    @classmethod
    def _validate_action_template(cls, value: str, info: ValidationInfo) -> str:
        _require_text(value, info.field_name)
        count = placeholder_count(value)
        if count != 1:
            raise ValueError(f"{info.field_name} needs exactly 1 placeholder, found {count}")
        return value

    @field_validator("runner_executable", "shell_path")
    @classmethod
    def _validate_executable(cls, value: str, info: ValidationInfo) -> str:
        return _require_text(value, info.field_name)

    @field_validator("environment_prefix")
    @classmethod
    def _strip_prefix(cls, value: str) -> str:
        return value.strip()


def _describe_validation_error(exc: ValidationError) -> tuple[str, str]:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "configuration"
    if first.get("type") == "missing":
        return location, f"configuration '{location}' is required but not defined"
    message = str(first.get("msg", "invalid value"))
    message = message.removeprefix("Value error, ")
    return location, message


def build_config(**fields: object) -> FeatureConfig:
    """Build a validated config, converting pydantic errors to ConfigurationError."""
    try:
        return FeatureConfig(**fields)
    except ValidationError as exc:
        location, message = _describe_validation_error(exc)
        raise ConfigurationError(
            f"Invalid configuration: {message}",
            hint=f"Set '{location}' in the tenantflags config file.",
        ) from exc


def ensure_configured(config: FeatureConfig | None) -> FeatureConfig:
    if config is None:
        raise ConfigurationError(
            "tenantflags is not configured",
            hint=f"Create {DEFAULT_CONFIG_PATH} with {', '.join(REQUIRED_FIELDS)}.",
        )
    for key in REQUIRED_FIELDS:
        if not getattr(config, key, ""):
            raise ConfigurationError(f"configuration '{key}' is required but not defined")
    return config


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        env_path = os.getenv(CONFIG_PATH_ENV, "").strip()
        if env_path:
            return Path(env_path).expanduser()
        return DEFAULT_CONFIG_PATH.expanduser()
    return Path(path).expanduser()


def _select_table(raw: Mapping[str, object]) -> dict[str, object]:
    section = raw.get(CONFIG_SECTION)
    if isinstance(section, dict):
        return dict(section)
    return {key: value for key, value in raw.items() if not isinstance(value, dict)}


def load_config(path: str | Path | None = None) -> FeatureConfig | None:
    """Load the config file; ``None`` means the tool is unconfigured."""
    resolved = get_config_path(path)
    if not resolved.exists():
        return None
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigurationError(
            f"Could not read config file: {resolved}",
            hint=str(exc),
        ) from exc
    table = _select_table(raw)
    if not table:
        return None
    return build_config(**table)
