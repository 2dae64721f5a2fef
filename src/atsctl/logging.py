"""Structured operation logging for atsctl commands.

Every CLI command runs inside an :class:`OperationScope`. The scope collects
the steps performed and the final result, then appends one JSON record to
``operations.jsonl`` and a one-line summary to the human-readable
``atsctl.log`` (rotated by the standard library handler).

Logging must never be the reason a provisioning run fails: when the log
directory cannot be created or written the logger disables itself and the
command carries on.
"""
from __future__ import annotations

import json
import logging
import logging.handlers
import os
import time
import uuid
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType

from . import __version__

OPERATIONS_LOG = "operations.jsonl"
HUMAN_LOG = "atsctl.log"
HUMAN_LOGGER_NAME = "atsctl.operations"
_HUMAN_LOG_MAX_BYTES = 1_048_576
_HUMAN_LOG_BACKUPS = 5


def _timestamp() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _sanitize(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


def _release_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


class StructuredLogger:
    """Append operation records to the atsctl log directory."""

    def __init__(self, logs_dir: Path) -> None:
        """Prepare log files under *logs_dir*, disabling logging when unavailable."""
        self._logs_dir = Path(logs_dir)
        self._operations_log_path = self._logs_dir / OPERATIONS_LOG
        self._human_log_path = self._logs_dir / HUMAN_LOG
        self._enabled = True
        self._human: logging.Logger | None = None
        try:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False
            return
        self._human = self._build_human_logger()

    @property
    def logs_dir(self) -> Path:
        """Return the directory receiving log files."""
        return self._logs_dir

    @property
    def enabled(self) -> bool:
        """Return ``True`` while records are still being written."""
        return self._enabled

    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> OperationScope:
        """Return a scope recording a single command invocation."""
        return OperationScope(self, command, args=args, target=target)

    def close(self) -> None:
        """Detach and close the human-readable log handler."""
        if self._human is None:
            return
        _release_handlers(self._human)
        self._human = None

    # ------------------------------------------------------------------
    def _build_human_logger(self) -> logging.Logger | None:
        human = logging.getLogger(HUMAN_LOGGER_NAME)
        human.setLevel(logging.INFO)
        human.propagate = False
        _release_handlers(human)
        try:
            handler = logging.handlers.RotatingFileHandler(
                self._human_log_path,
                maxBytes=_HUMAN_LOG_MAX_BYTES,
                backupCount=_HUMAN_LOG_BACKUPS,
                encoding="utf-8",
            )
        except OSError:
            return None
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        human.addHandler(handler)
        return human

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        line = json.dumps(_sanitize(record), sort_keys=True)
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError:
            self._enabled = False
            return
        if self._human is None:
            return
        result = record.get("result")
        status = "unknown"
        message = ""
        if isinstance(result, Mapping):
            status = str(result.get("status", "unknown"))
            message = str(result.get("message", ""))
        level = logging.ERROR if status == "error" else logging.INFO
        if status == "warning":
            level = logging.WARNING
        self._human.log(level, "%s [%s] %s", record.get("command"), status, message)


class OperationScope:
    """Collects steps and the outcome of one command invocation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Initialise the scope; nothing is written until it finishes."""
        self._logger = logger
        self.command = command
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.op_id = uuid.uuid4().hex
        self.steps: list[dict[str, object]] = []
        self._started_at = _timestamp()
        self._start = time.perf_counter()
        self._lock_wait_ms: int | None = None
        self._result: dict[str, object] | None = None
        self._written = False

    def __enter__(self) -> OperationScope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._result is None:
            if exc is not None and not _is_clean_exit(exc):
                self.error(f"Unhandled error: {exc}", errors=[repr(exc)])
            else:
                self.success("Completed.", changed=0)
        self._flush()

    @property
    def result(self) -> Mapping[str, object] | None:
        """Return the recorded result, if the scope has finished."""
        return self._result

    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        """Record a step performed while executing the command."""
        step: dict[str, object] = {"name": name, "status": status, "at": _timestamp()}
        if detail:
            step["detail"] = detail
        self.steps.append(step)

    def set_lock_wait_ms(self, wait_ms: int) -> None:
        """Record how long the command waited for its lock."""
        self._lock_wait_ms = wait_ms

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Iterable[str] | None = None,
        backups: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Finish the scope successfully."""
        self._finish(
            "success",
            message,
            changed=changed,
            warnings=warnings,
            errors=None,
            backups=backups,
            context=context,
            rc=0,
        )

    def warning(
        self,
        message: str,
        *,
        warnings: Iterable[str] | None = None,
        errors: Iterable[str] | None = None,
        changed: int = 0,
        backups: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Finish the scope with warnings that did not stop the command."""
        self._finish(
            "warning",
            message,
            changed=changed,
            warnings=warnings,
            errors=errors,
            backups=backups,
            context=context,
            rc=0,
        )

    def error(
        self,
        message: str,
        *,
        errors: Iterable[str] | None = None,
        rc: int = 1,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Finish the scope with an error."""
        self._finish(
            "error",
            message,
            changed=changed,
            warnings=None,
            errors=list(errors) if errors else [message],
            backups=None,
            context=context,
            rc=rc,
        )

    # ------------------------------------------------------------------
    def _finish(
        self,
        status: str,
        message: str,
        *,
        changed: int,
        warnings: Iterable[str] | None,
        errors: Iterable[str] | None,
        backups: Sequence[str] | None,
        context: Mapping[str, object] | None,
        rc: int,
    ) -> None:
        self._result = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": list(warnings or []),
            "errors": list(errors or []),
            "backups": list(backups or []),
            "context": _sanitize(dict(context or {})),
            "rc": rc,
        }
        self._flush()

    def _flush(self) -> None:
        if self._written or self._result is None:
            return
        self._written = True
        record: dict[str, object] = {
            "op_id": self.op_id,
            "command": self.command,
            "args": self.args,
            "target": self.target,
            "started_at": self._started_at,
            "finished_at": _timestamp(),
            "duration_ms": int((time.perf_counter() - self._start) * 1000),
            "steps": self.steps,
            "result": self._result,
            "context": {"atsctl_version": __version__, "pid": os.getpid()},
        }
        if self._lock_wait_ms is not None:
            record["lock_wait_ms"] = self._lock_wait_ms
        self._logger._write(record)


def _is_clean_exit(exc: BaseException) -> bool:
    # typer.Exit / SystemExit with code 0 are normal command termination.
    code = getattr(exc, "exit_code", getattr(exc, "code", None))
    return code in (0, None) and type(exc).__name__ in {"Exit", "SystemExit"}


__all__ = ["OperationScope", "StructuredLogger"]
