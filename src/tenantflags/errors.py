"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    INPUT_ERROR = 5
    PROCESS_ERROR = 6
    OUTPUT_ERROR = 7


@dataclass
class TenantFlagsError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class ConfigurationError(TenantFlagsError):
    code: ExitCode = ExitCode.CONFIG_ERROR


@dataclass
class InputError(TenantFlagsError):
    code: ExitCode = ExitCode.INPUT_ERROR


@dataclass
class SpawnFailedError(TenantFlagsError):
    code: ExitCode = ExitCode.PROCESS_ERROR


@dataclass
class ProcessFailedError(TenantFlagsError):
    code: ExitCode = ExitCode.PROCESS_ERROR


@dataclass
class OutputParseError(TenantFlagsError):
    code: ExitCode = ExitCode.OUTPUT_ERROR


class NoJsonFoundError(OutputParseError):
    """Runner output contained no JSON array line."""


class JsonParseError(OutputParseError):
    """The JSON array line could not be decoded into a list."""


class EmptyTenantListError(OutputParseError):
    """The decoded tenant list was empty."""


class StatusParseError(OutputParseError):
    """Strict status output was neither ``true`` nor ``false``."""


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
