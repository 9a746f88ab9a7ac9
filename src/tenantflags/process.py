"""Asynchronous login-shell execution with captured output."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from tenantflags.config import DEFAULT_SHELL_PATH
from tenantflags.logging import truncate_log

logger = py_logging.getLogger(__name__)

SPAWN_FAILED_EXIT_CODE = -1
_READ_CHUNK_SIZE = 4096


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str
    stderr: str
    spawn_error: str = ""

    @property
    def spawn_failed(self) -> bool:
        return bool(self.spawn_error)

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.spawn_failed

    def failure_output(self) -> str:
        """Text explaining a failure: spawn error, else stderr, else stdout."""
        if self.spawn_error:
            return self.spawn_error
        return self.stderr if self.stderr else self.stdout


class CommandRunner(Protocol):
    def __call__(self, command: str) -> Awaitable[CommandResult]: ...


def build_shell_argv(shell_path: str, cwd: str | Path, command: str) -> list[str]:
    return [shell_path, "-lc", f"cd '{cwd}' && {command}"]


async def _drain(stream: asyncio.StreamReader | None, chunks: list[bytes]) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK_SIZE)
        if not chunk:
            return
        chunks.append(chunk)


def spawn_failed_result(shell_path: str, exc: BaseException) -> CommandResult:
    return CommandResult(
        exit_code=SPAWN_FAILED_EXIT_CODE,
        stdout="",
        stderr="",
        spawn_error=f"Could not start {shell_path}: {exc}",
    )


def _decode(chunks: list[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace")


async def run_command(shell_path: str, cwd: str | Path, command: str) -> CommandResult:
    """Run ``command`` through ``<shell> -lc`` and capture both output streams.

    A non-zero exit status is returned as data. When the shell itself cannot
    be started the result carries ``SPAWN_FAILED_EXIT_CODE`` and the OS error
    text in ``spawn_error``.
    """
    argv = build_shell_argv(shell_path, cwd, command)
    logger.debug("Spawning shell=%s cwd=%s command=%s", shell_path, cwd, truncate_log(command))
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (OSError, ValueError) as exc:
        # ValueError: arguments the OS cannot accept, e.g. an embedded NUL byte.
        logger.error("Could not start shell=%s: %s", shell_path, exc)
        return spawn_failed_result(shell_path, exc)

    stdout_chunks: list[bytes] = []
    stderr_chunks: list[bytes] = []
    await asyncio.gather(
        _drain(process.stdout, stdout_chunks),
        _drain(process.stderr, stderr_chunks),
    )
    exit_code = await process.wait()
    result = CommandResult(
        exit_code=exit_code,
        stdout=_decode(stdout_chunks),
        stderr=_decode(stderr_chunks),
    )
    if exit_code != 0:
        logger.warning(
            "Command exited with code=%s stderr=%s",
            exit_code,
            truncate_log(result.stderr),
        )
    else:
        logger.debug("Command finished stdout=%s", truncate_log(result.stdout))
    return result


class ProcessRunner:
    """Runs commands in a login shell from a working directory.

    ``cwd`` defaults to the current directory at the time each command runs.
    """

    def __init__(self, shell_path: str = DEFAULT_SHELL_PATH, cwd: str | Path | None = None) -> None:
        self.shell_path = shell_path
        self.cwd = cwd

    async def __call__(self, command: str) -> CommandResult:
        cwd = self.cwd if self.cwd is not None else Path.cwd()
        return await run_command(self.shell_path, cwd, command)

    def start(
        self,
        command: str,
        on_exit: Callable[[CommandResult], None],
    ) -> asyncio.Task[CommandResult]:
        """Schedule ``command`` and hand its result to ``on_exit`` once."""
        task = asyncio.get_running_loop().create_task(self(command))

        def _deliver(done: asyncio.Task[CommandResult]) -> None:
            if done.cancelled():
                return
            error = done.exception()
            if error is not None:
                logger.error("Command task failed before producing a result: %s", error)
                on_exit(spawn_failed_result(self.shell_path, error))
                return
            on_exit(done.result())

        task.add_done_callback(_deliver)
        return task
