"""Feature flag toggling for multi-tenant applications via the app runner."""

from .commands import FeatureAction, build_action_command, build_runner_command, build_tenant_list_command
from .config import FeatureConfig, build_config, load_config
from .errors import ExitCode, TenantFlagsError
from .identifiers import normalize, quote
from .orchestrator import (
    ActionOutcome,
    ActionState,
    FeatureActionFlow,
    Notification,
    NotificationLevel,
    fetch_tenants,
    run_action,
)
from .parsing import extract_boolean_status, extract_tenant_list
from .process import CommandResult, ProcessRunner, run_command

__all__ = [
    "ActionOutcome",
    "ActionState",
    "build_action_command",
    "build_config",
    "build_runner_command",
    "build_tenant_list_command",
    "CommandResult",
    "ExitCode",
    "extract_boolean_status",
    "extract_tenant_list",
    "FeatureAction",
    "FeatureActionFlow",
    "FeatureConfig",
    "fetch_tenants",
    "load_config",
    "normalize",
    "Notification",
    "NotificationLevel",
    "ProcessRunner",
    "quote",
    "run_action",
    "run_command",
    "TenantFlagsError",
]
