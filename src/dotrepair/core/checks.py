"""Parses the doctor's check list into Check records.

Accepts:
1. A JSON list of ``{"id"|"check_id", "status", "message"?, "target"?}``
2. A JSON object with a ``checks`` key holding such a list
3. Plain text, one check per line: ``<status> <check_id> [message]``
"""

from __future__ import annotations

import json
from typing import Any

from dotrepair.core.errors import CheckInputError
from dotrepair.core.models import Check, CheckStatus


def parse_checks(text: str) -> list[Check]:
    """Parse doctor output, preserving input order."""
    stripped = text.strip()
    if not stripped:
        return []

    if stripped[0] in "[{":
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise CheckInputError(f"Invalid JSON check list: {e}") from e
        if isinstance(data, dict):
            data = data.get("checks")
        if not isinstance(data, list):
            raise CheckInputError("Expected a list of checks or an object with a 'checks' list")
        return [_check_from_record(item, i) for i, item in enumerate(data)]

    checks = []
    for lineno, line in enumerate(stripped.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(None, 2)
        if len(parts) < 2:
            raise CheckInputError(f"Line {lineno}: expected '<status> <check_id> [message]'")
        checks.append(Check(
            check_id=parts[1],
            status=_parse_status(parts[0], f"line {lineno}"),
            message=parts[2] if len(parts) > 2 else "",
        ))
    return checks


def _check_from_record(item: Any, index: int) -> Check:
    if not isinstance(item, dict):
        raise CheckInputError(f"Check #{index}: expected an object, got {type(item).__name__}")
    check_id = item.get("check_id") or item.get("id")
    if not check_id or not isinstance(check_id, str):
        raise CheckInputError(f"Check #{index}: missing 'id'")
    target = item.get("target")
    return Check(
        check_id=check_id,
        status=_parse_status(item.get("status", ""), f"check {check_id}"),
        message=str(item.get("message", "")),
        target=str(target) if target else None,
    )


def _parse_status(raw: Any, where: str) -> CheckStatus:
    value = str(raw).strip().lower()
    aliases = {"ok": "pass", "passed": "pass", "failed": "fail", "warning": "warn"}
    value = aliases.get(value, value)
    try:
        return CheckStatus(value)
    except ValueError:
        raise CheckInputError(f"{where}: unknown status {raw!r}") from None
