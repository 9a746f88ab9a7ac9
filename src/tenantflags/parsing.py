"""Extraction of tenant lists and flag status from runner output."""

from __future__ import annotations

import json
import re

from tenantflags.errors import (
    EmptyTenantListError,
    JsonParseError,
    NoJsonFoundError,
    StatusParseError,
)
from tenantflags.logging import truncate_log

_LINE_SPLIT = re.compile(r"[\r\n]+")
_RESULT_MARKER = "=> "


def find_json_array_line(text: str) -> str | None:
    for line in _LINE_SPLIT.split(text):
        trimmed = line.strip()
        if trimmed.startswith("[") and trimmed.endswith("]"):
            return trimmed
    return None


def extract_tenant_list(text: str) -> list[str]:
    """Return the tenant names printed as a JSON array somewhere in ``text``.

    Only the first line shaped like ``[...]`` is considered; runner output
    usually carries boot noise before it.
    """
    json_line = find_json_array_line(text)
    if json_line is None:
        raise NoJsonFoundError(
            f"JSON not found in output: {truncate_log(text)}",
            hint="The tenant query must print a JSON array on its own line.",
        )
    try:
        decoded: object = json.loads(json_line)
    except json.JSONDecodeError as exc:
        raise JsonParseError(f"Could not parse JSON: {truncate_log(json_line)}") from exc
    if not isinstance(decoded, list):
        raise JsonParseError(f"Could not parse JSON: {truncate_log(json_line)}")
    if not decoded:
        raise EmptyTenantListError(
            "No tenants in array",
            hint="Create at least one tenant record before toggling features.",
        )
    return [item if isinstance(item, str) else str(item) for item in decoded]


def extract_boolean_status(text: str, *, strict: bool = False) -> bool:
    """Read a flag status from check-command output.

    By default any occurrence of ``true`` counts as enabled. In strict mode
    the last non-empty line must be exactly ``true`` or ``false``.
    """
    if not strict:
        return "true" in text

    lines = [line.strip() for line in _LINE_SPLIT.split(text) if line.strip()]
    if lines:
        verdict = lines[-1].removeprefix(_RESULT_MARKER).strip()
        if verdict == "true":
            return True
        if verdict == "false":
            return False
    raise StatusParseError(
        f"Unrecognized status output: {truncate_log(text) or '(empty)'}",
        hint="The check command must print only true or false.",
    )
