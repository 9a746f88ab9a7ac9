"""Per-action orchestration: validate, fetch tenants, choose, run, report."""

from __future__ import annotations

import inspect
import logging as py_logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Union

from tenantflags.commands import (
    FeatureAction,
    action_template,
    build_action_command,
    build_tenant_list_command,
)
from tenantflags.config import FeatureConfig, ensure_configured
from tenantflags.errors import (
    ProcessFailedError,
    SpawnFailedError,
    TenantFlagsError,
)
from tenantflags.identifiers import normalize
from tenantflags.logging import truncate_log
from tenantflags.parsing import extract_boolean_status, extract_tenant_list
from tenantflags.process import CommandResult, CommandRunner, ProcessRunner

logger = py_logging.getLogger(__name__)

NOTIFICATION_TITLE = "Tenant Feature"


class ActionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    FETCHING_TENANTS = "fetching-tenants"
    AWAITING_TENANT_CHOICE = "awaiting-tenant-choice"
    EXECUTING_ACTION = "executing-action"
    REPORTING = "reporting"
    DONE = "done"
    ERRORED = "errored"


class NotificationLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str
    title: str = NOTIFICATION_TITLE


@dataclass(frozen=True)
class ActionOutcome:
    action: FeatureAction
    state: ActionState
    message: str
    feature: str = ""
    tenant: str = ""
    enabled: bool | None = None
    cancelled: bool = False
    error: TenantFlagsError | None = None

    @property
    def ok(self) -> bool:
        return self.state is ActionState.DONE and not self.cancelled


NotificationSink = Callable[[Notification], None]
TenantChooser = Callable[[Sequence[str], str], Union[str, None, Awaitable[Union[str, None]]]]

_PROGRESS_VERBS = {
    FeatureAction.ENABLE: "Enabling",
    FeatureAction.DISABLE: "Disabling",
    FeatureAction.CHECK: "Checking",
}
_DONE_VERBS = {
    FeatureAction.ENABLE: "enabled",
    FeatureAction.DISABLE: "disabled",
}
_ERROR_VERBS = {
    FeatureAction.ENABLE: "enabling",
    FeatureAction.DISABLE: "disabling",
    FeatureAction.CHECK: "checking",
}


def _discard(notification: Notification) -> None:
    del notification


async def fetch_tenants(config: FeatureConfig, runner: CommandRunner) -> list[str]:
    """Ask the application runner for every tenant name."""
    result = await runner(build_tenant_list_command(config))
    if result.spawn_failed:
        raise SpawnFailedError(result.spawn_error, hint=f"Check shell_path ({config.shell_path}).")
    if result.exit_code != 0:
        raise ProcessFailedError(
            f"{config.runner_executable} runner failed: {result.failure_output().strip()}",
            hint="Run the tenant query manually to inspect the application boot output.",
        )
    tenants = extract_tenant_list(result.stdout)
    logger.debug("Fetched %s tenants", len(tenants))
    return tenants


class FeatureActionFlow:
    """State machine for a single enable/disable/check request.

    Create one instance per request. Every failure ends in ``ERRORED`` with a
    single error notification; the coroutine itself does not raise.
    """

    def __init__(
        self,
        config: FeatureConfig | None,
        action: FeatureAction | str,
        *,
        chooser: TenantChooser,
        notify: NotificationSink | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self.config = config
        self.action = FeatureAction(action)
        self._chooser = chooser
        self._notify = notify or _discard
        self._runner = runner
        self.state = ActionState.IDLE
        self.history: list[ActionState] = [ActionState.IDLE]

    def _transition(self, state: ActionState) -> None:
        logger.debug("action=%s transition %s -> %s", self.action.value, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _emit(self, level: NotificationLevel, message: str) -> None:
        self._notify(Notification(level=level, message=message))

    async def _choose(self, tenants: list[str], prompt: str) -> str | None:
        choice = self._chooser(tenants, prompt)
        if inspect.isawaitable(choice):
            choice = await choice
        if choice is None or choice == "":
            return None
        return str(choice)

    def _report(self, config: FeatureConfig, result: CommandResult, feature: str, tenant: str) -> ActionOutcome:
        verb = _ERROR_VERBS[self.action]
        if result.spawn_failed:
            raise SpawnFailedError(f"Error {verb} feature: {result.spawn_error}")
        if result.exit_code != 0:
            raise ProcessFailedError(f"Error {verb} feature: {result.failure_output().strip()}")

        if self.action is FeatureAction.CHECK:
            enabled = extract_boolean_status(result.stdout, strict=config.strict_status)
            status = "enabled" if enabled else "disabled"
            message = f"Feature :{feature} is {status} in '{tenant}'"
        else:
            enabled = self.action is FeatureAction.ENABLE
            message = f"Feature :{feature} {_DONE_VERBS[self.action]} in '{tenant}'"
        return ActionOutcome(
            action=self.action,
            state=ActionState.DONE,
            message=message,
            feature=feature,
            tenant=tenant,
            enabled=enabled,
        )

    def _fail(self, error: TenantFlagsError, feature: str, tenant: str) -> ActionOutcome:
        logger.error(
            "action=%s failed in state=%s: %s",
            self.action.value,
            self.state.value,
            truncate_log(error.message),
        )
        self._transition(ActionState.ERRORED)
        self._emit(NotificationLevel.ERROR, error.message)
        return ActionOutcome(
            action=self.action,
            state=ActionState.ERRORED,
            message=error.message,
            feature=feature,
            tenant=tenant,
            error=error,
        )

    async def run(self, selection: str | None) -> ActionOutcome:
        if self.state is not ActionState.IDLE:
            raise RuntimeError("FeatureActionFlow instances can only run once.")

        feature = ""
        tenant = ""
        try:
            self._transition(ActionState.VALIDATING)
            config = ensure_configured(self.config)
            feature = normalize(selection)
            runner = self._runner or ProcessRunner(config.shell_path)

            self._transition(ActionState.FETCHING_TENANTS)
            self._emit(NotificationLevel.INFO, "Loading tenants...")
            tenants = await fetch_tenants(config, runner)

            self._transition(ActionState.AWAITING_TENANT_CHOICE)
            choice = await self._choose(tenants, f"Select Tenant to {self.action.value} :{feature}")
            if choice is None:
                self._transition(ActionState.DONE)
                self._emit(NotificationLevel.INFO, "Cancelled")
                return ActionOutcome(
                    action=self.action,
                    state=ActionState.DONE,
                    message="Cancelled",
                    feature=feature,
                    cancelled=True,
                )
            tenant = choice

            self._transition(ActionState.EXECUTING_ACTION)
            command = build_action_command(config, action_template(config, self.action), tenant, feature)
            self._emit(
                NotificationLevel.INFO,
                f"{_PROGRESS_VERBS[self.action]} :{feature} in '{tenant}'...",
            )
            result = await runner(command)

            self._transition(ActionState.REPORTING)
            outcome = self._report(config, result, feature, tenant)
        except TenantFlagsError as exc:
            return self._fail(exc, feature, tenant)
        except Exception as exc:
            logger.exception("Unhandled failure in action=%s", self.action.value)
            return self._fail(TenantFlagsError(f"Unexpected failure: {exc}"), feature, tenant)

        self._transition(ActionState.DONE)
        self._emit(NotificationLevel.INFO, outcome.message)
        return outcome


async def run_action(
    config: FeatureConfig | None,
    action: FeatureAction | str,
    selection: str | None,
    *,
    chooser: TenantChooser,
    notify: NotificationSink | None = None,
    runner: CommandRunner | None = None,
) -> ActionOutcome:
    flow = FeatureActionFlow(config, action, chooser=chooser, notify=notify, runner=runner)
    return await flow.run(selection)
