"""Text edits for ``postgresql.conf`` and ``pg_hba.conf``."""
from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date
from pathlib import Path


def apply_settings(text: str, settings: Sequence[tuple[str, str]]) -> tuple[str, list[str]]:
    """Rewrite ``key = value`` lines, commented or not, for each setting.

    Keys without a matching line are left alone. Returns the new text and the
    keys whose lines actually changed.
    """
    changed: list[str] = []
    for key, value in settings:
        pattern = re.compile(rf"^#?{re.escape(key)}\s*=.*$", re.MULTILINE)
        replacement = f"{key} = {value}"
        updated = pattern.sub(lambda _match: replacement, text)
        if updated != text:
            changed.append(key)
        text = updated
    return text, changed


def rule_pattern(rule: str) -> re.Pattern[str]:
    """Return a pattern matching *rule* regardless of spacing between fields."""
    tokens = rule.split()
    return re.compile("^" + ".*".join(re.escape(token) for token in tokens), re.MULTILINE)


def missing_rules(text: str, rules: Sequence[str]) -> list[str]:
    """Return the HBA *rules* not present in *text*."""
    return [rule for rule in rules if not rule_pattern(rule).search(text)]


def append_rules(text: str, rules: Sequence[str]) -> str:
    """Append *rules* to *text*, one per line."""
    if not rules:
        return text
    if text and not text.endswith("\n"):
        text += "\n"
    return text + "".join(f"{rule}\n" for rule in rules)


def backup_path(path: Path, today: date) -> Path:
    """Return the dated backup location for *path*."""
    return path.with_name(f"{path.name}.backup.{today:%Y%m%d}")


__all__ = [
    "append_rules",
    "apply_settings",
    "backup_path",
    "missing_rules",
    "rule_pattern",
]
