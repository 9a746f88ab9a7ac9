"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging as py_logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TextIO

from .commands import FeatureAction
from .config import FeatureConfig, ensure_configured, load_config
from .errors import ExitCode, InputError, TenantFlagsError, user_facing_error
from .logging import configure_logging
from .orchestrator import (
    Notification,
    NotificationLevel,
    NotificationSink,
    TenantChooser,
    fetch_tenants,
    run_action,
)
from .process import CommandRunner, ProcessRunner

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")


def _log_level_type(value: str) -> str:
    normalized = value.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tenantflags",
        description="Toggle and query feature flags for one tenant through the application runner.",
    )
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--log-level", type=_log_level_type, default="WARN")
    parser.add_argument("--log-file", type=Path, default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)
    for action in FeatureAction:
        action_parser = subparsers.add_parser(action.value, help=f"{action.value.capitalize()} a feature for a tenant")
        action_parser.add_argument("selection", nargs="+", help="Feature name text, normalized before use")
        action_parser.add_argument("--tenant", default=None, help="Skip the prompt and use this tenant")
    subparsers.add_parser("tenants", help="List tenant names reported by the runner")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def print_notification(
    notification: Notification,
    *,
    out: TextIO | None = None,
    err: TextIO | None = None,
) -> None:
    stream = (out or sys.stdout) if notification.level is NotificationLevel.INFO else (err or sys.stderr)
    print(f"[{notification.title}] {notification.message}", file=stream)


async def prompt_for_tenant(
    tenants: Sequence[str],
    prompt: str,
    *,
    input_func: Callable[[str], str] = input,
    out: TextIO | None = None,
) -> str | None:
    """Numbered tenant menu; empty input, EOF or an unknown answer cancels.

    The blocking read runs in a worker thread so other in-flight commands keep
    draining while the user decides.
    """
    stream = out or sys.stderr
    print(prompt, file=stream)
    for index, name in enumerate(tenants, start=1):
        print(f"  {index}. {name}", file=stream)
    try:
        answer = (await asyncio.to_thread(input_func, "Tenant number: ")).strip()
    except EOFError:
        return None
    if not answer:
        return None
    if answer.isdigit():
        position = int(answer)
        if 1 <= position <= len(tenants):
            return tenants[position - 1]
        return None
    return answer if answer in tenants else None


def preset_tenant_chooser(tenant: str) -> TenantChooser:
    def _choose(tenants: Sequence[str], prompt: str) -> str:
        del prompt
        if tenant in tenants:
            return tenant
        raise InputError(
            f"Tenant '{tenant}' not found. Available: {', '.join(tenants)}",
            code=ExitCode.INVALID_ARGS,
            hint="Pass one of the listed names to --tenant.",
        )

    return _choose


async def _list_tenants(config: FeatureConfig | None, runner: CommandRunner | None) -> int:
    resolved = ensure_configured(config)
    tenants = await fetch_tenants(resolved, runner or ProcessRunner(resolved.shell_path))
    for name in tenants:
        print(name)
    return int(ExitCode.SUCCESS)


def run_feature_command(
    namespace: argparse.Namespace,
    config: FeatureConfig | None,
    *,
    runner: CommandRunner | None = None,
    chooser: TenantChooser | None = None,
    notify: NotificationSink = print_notification,
) -> int:
    selection = " ".join(namespace.selection)
    if chooser is None:
        chooser = preset_tenant_chooser(namespace.tenant) if namespace.tenant else prompt_for_tenant
    outcome = asyncio.run(
        run_action(
            config,
            namespace.command,
            selection,
            chooser=chooser,
            notify=notify,
            runner=runner,
        )
    )
    if outcome.error is not None:
        return int(outcome.error.code)
    return int(ExitCode.SUCCESS)


def main(
    argv: Sequence[str] | None = None,
    *,
    runner: CommandRunner | None = None,
    chooser: TenantChooser | None = None,
) -> int:
    logger = configure_logging()
    try:
        namespace = parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    logger = configure_logging(level=namespace.log_level, log_file=namespace.log_file)

    try:
        config = load_config(namespace.config)
        if namespace.command == "tenants":
            logger.debug("Listing tenants")
            return asyncio.run(_list_tenants(config, runner))
        logger.debug("Running %s for selection=%s", namespace.command, namespace.selection)
        return run_feature_command(namespace, config, runner=runner, chooser=chooser)
    except TenantFlagsError as exc:
        logger.error(
            "Handled TenantFlagsError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        print(user_facing_error("Unexpected runtime failure", hint="Re-run with --log-level DEBUG."), file=sys.stderr)
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
