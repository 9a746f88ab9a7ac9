"""Runner command construction from configured templates."""

from __future__ import annotations

import logging as py_logging
import re
from enum import Enum

from tenantflags.config import PLACEHOLDER_PATTERN, FeatureConfig, placeholder_count
from tenantflags.errors import ConfigurationError, InputError
from tenantflags.identifiers import quote

logger = py_logging.getLogger(__name__)


class FeatureAction(str, Enum):
    ENABLE = "enable"
    DISABLE = "disable"
    CHECK = "check"


def fill_template(template: str, *values: str) -> str:
    """Substitute ``values`` into the ``%s`` slots of ``template`` in order."""
    expected = placeholder_count(template)
    if expected != len(values):
        raise ConfigurationError(
            f"Template expects {expected} values, got {len(values)}: {template}",
            hint="Check the placeholder count of the configured templates.",
        )
    remaining = iter(values)

    def _replace(match: re.Match[str]) -> str:
        if match.group(1) == "%":
            return "%"
        return next(remaining)

    return PLACEHOLDER_PATTERN.sub(_replace, template)


def action_template(config: FeatureConfig, action: FeatureAction | str) -> str:
    resolved = FeatureAction(action)
    if resolved is FeatureAction.ENABLE:
        return config.enable_command
    if resolved is FeatureAction.DISABLE:
        return config.disable_command
    return config.check_command


def build_runner_command(config: FeatureConfig, expression: str) -> str:
    """Wrap an expression as ``[env ]<runner> runner "<expression>"``."""
    prefix = f"{config.environment_prefix} " if config.environment_prefix else ""
    return f'{prefix}{config.runner_executable} runner "{expression}"'


def build_tenant_list_command(config: FeatureConfig) -> str:
    return build_runner_command(config, f"puts {config.tenant_model}.pluck(:name).to_json")


def build_action_command(
    config: FeatureConfig,
    template: str,
    tenant: str,
    identifier: str,
) -> str:
    if "\n" in tenant or "\r" in tenant:
        raise InputError(f"Tenant name spans multiple lines: {tenant!r}")
    quoted_identifier = quote(identifier)
    quoted_tenant = quote(tenant)
    inner_command = fill_template(template, quoted_identifier)
    if placeholder_count(config.tenant_switch_template) == 1:
        expression = fill_template(config.tenant_switch_template, inner_command)
    else:
        expression = fill_template(config.tenant_switch_template, quoted_tenant, inner_command)
    command = build_runner_command(config, expression)
    logger.debug("Built runner command tenant=%s identifier=%s command=%s", tenant, identifier, command)
    return command
