"""Plan and apply directory creation, ownership and permissions."""
from __future__ import annotations

import grp
import os
import pwd
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal


@dataclass(slots=True)
class DirectorySpec:
    """Desired state for a directory.

    With ``recursive`` the owner and mode also apply to everything already
    below the directory, like ``chown -R`` / ``chmod -R``.
    """

    path: Path
    mode: int | None = None
    owner: str | None = None
    group: str | None = None
    recursive: bool = False


@dataclass(slots=True)
class DirectoryAction:
    """Single filesystem change required to satisfy a spec."""

    kind: Literal["mkdir", "chown", "chmod"]
    path: Path
    description: str
    mode: int | None = None
    uid: int = -1
    gid: int = -1


@dataclass(slots=True)
class DirectoryPlan:
    """Ordered actions plus anything that blocks the desired state."""

    actions: list[DirectoryAction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        """Return ``True`` when nothing needs to change."""
        return not self.actions


def _resolve_ids(spec: DirectorySpec, plan: DirectoryPlan) -> tuple[int, int] | None:
    uid = -1
    gid = -1
    if spec.owner:
        try:
            uid = pwd.getpwnam(spec.owner).pw_uid
        except KeyError:
            plan.warnings.append(f"User '{spec.owner}' does not exist; cannot own {spec.path}.")
            return None
    if spec.group:
        try:
            gid = grp.getgrnam(spec.group).gr_gid
        except KeyError:
            plan.warnings.append(f"Group '{spec.group}' does not exist; cannot own {spec.path}.")
            return None
    return uid, gid


def _walk(root: Path, recursive: bool) -> Iterator[Path]:
    yield root
    if not recursive:
        return
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        for name in sorted(dirnames) + sorted(filenames):
            yield base / name


def _describe_owner(spec: DirectorySpec) -> str:
    return f"{spec.owner or ''}:{spec.group or ''}".strip(":")


def plan_directories(specs: Iterable[DirectorySpec]) -> DirectoryPlan:
    """Return the actions needed to bring every spec into its desired state."""
    plan = DirectoryPlan()
    planned_mkdirs: set[Path] = set()
    for spec in specs:
        ids = _resolve_ids(spec, plan)
        if ids is None:
            continue
        uid, gid = ids
        wants_chown = uid != -1 or gid != -1

        if not spec.path.exists():
            if spec.path in planned_mkdirs:
                continue
            planned_mkdirs.add(spec.path)
            plan.actions.append(
                DirectoryAction(
                    kind="mkdir",
                    path=spec.path,
                    description=f"Create directory {spec.path}.",
                    mode=spec.mode,
                )
            )
            if wants_chown:
                plan.actions.append(
                    DirectoryAction(
                        kind="chown",
                        path=spec.path,
                        description=f"Set owner of {spec.path} to {_describe_owner(spec)}.",
                        uid=uid,
                        gid=gid,
                    )
                )
            continue

        if not spec.path.is_dir():
            plan.warnings.append(f"{spec.path} exists but is not a directory.")
            continue

        for path in _walk(spec.path, spec.recursive):
            if path.is_symlink():
                continue
            stat_result = path.stat()
            if wants_chown and (
                (uid != -1 and stat_result.st_uid != uid)
                or (gid != -1 and stat_result.st_gid != gid)
            ):
                plan.actions.append(
                    DirectoryAction(
                        kind="chown",
                        path=path,
                        description=f"Set owner of {path} to {_describe_owner(spec)}.",
                        uid=uid,
                        gid=gid,
                    )
                )
            if spec.mode is not None and stat_result.st_mode & 0o777 != spec.mode:
                plan.actions.append(
                    DirectoryAction(
                        kind="chmod",
                        path=path,
                        description=f"Set mode of {path} to {spec.mode:04o}.",
                        mode=spec.mode,
                    )
                )
    return plan


def apply_directory_plan(plan: DirectoryPlan, *, dry_run: bool = False) -> None:
    """Execute the actions described by *plan*."""
    if dry_run:
        return
    for action in plan.actions:
        if action.kind == "mkdir":
            action.path.mkdir(parents=True, exist_ok=True)
            if action.mode is not None:
                os.chmod(action.path, action.mode)
        elif action.kind == "chown":
            os.chown(action.path, action.uid, action.gid)
        elif action.kind == "chmod" and action.mode is not None:
            os.chmod(action.path, action.mode)


__all__ = [
    "DirectoryAction",
    "DirectoryPlan",
    "DirectorySpec",
    "apply_directory_plan",
    "plan_directories",
]
