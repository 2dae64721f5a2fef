"""Failure-mode tests for the structured logging subsystem."""
from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import typer

from atsctl.logging import HUMAN_LOGGER_NAME, StructuredLogger


def _read_records(logger: StructuredLogger) -> list[dict[str, object]]:
    path = logger._operations_log_path  # type: ignore[attr-defined]
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_structured_logger_disables_when_directory_unavailable(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Logger gracefully disables itself when log directory cannot be created."""
    log_dir = tmp_path / "logs"

    original_mkdir = Path.mkdir

    def fail_mkdir(self: Path, *args: object, **kwargs: object) -> None:
        if self == log_dir:
            raise PermissionError("no access")
        original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fail_mkdir)

    logger = StructuredLogger(log_dir)
    assert logger._enabled is False  # type: ignore[attr-defined]

    with logger.operation("demo", args={"foo": "bar"}) as op:
        op.success("done", changed=0)


def test_structured_logger_disables_after_write_failure(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Write failures mark the logger disabled so subsequent writes are skipped."""
    logger = StructuredLogger(tmp_path / "logs")
    operations_path = logger._operations_log_path  # type: ignore[attr-defined]

    original_open = Path.open

    def fail_once(self: Path, *args: object, **kwargs: object) -> object:
        if self == operations_path:
            raise OSError("disk full")
        return original_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", fail_once)

    with logger.operation("demo") as op:
        op.success("done", changed=0)

    assert logger._enabled is False  # type: ignore[attr-defined]

    # Subsequent operations should not raise even though logger is disabled.
    with logger.operation("demo-2") as op:
        op.success("done", changed=0)


def test_operation_scope_records_steps_and_lock_wait(tmp_path: Path) -> None:
    """Steps and the lock wait time end up in the JSON record."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("provision", target={"kind": "host"}) as op:
        op.set_lock_wait_ms(12)
        op.add_step("packages", status="success", detail="All packages installed.")
        op.add_step("firewall", status="skipped", detail="ufw not installed.")
        op.success("Provisioning completed.", changed=1)

    (record,) = _read_records(logger)
    assert record["command"] == "provision"
    assert record["target"] == {"kind": "host"}
    assert record["lock_wait_ms"] == 12
    assert [step["name"] for step in record["steps"]] == ["packages", "firewall"]  # type: ignore[union-attr]
    assert record["steps"][1]["status"] == "skipped"  # type: ignore[index]
    assert record["result"]["changed"] == 1  # type: ignore[index]
    assert "atsctl_version" in record["context"]  # type: ignore[operator]

    human = (tmp_path / "logs" / "atsctl.log").read_text(encoding="utf-8")
    assert "provision [success] Provisioning completed." in human


def test_operation_scope_warning_sanitises_context(tmp_path: Path) -> None:
    """Warnings should be recorded with JSON-safe context values."""
    logger = StructuredLogger(tmp_path / "logs")

    class Custom:
        def __str__(self) -> str:
            return "<custom>"

    with logger.operation("demo", args={"path": Path("foo")}) as op:
        op.warning(
            "warned",
            warnings=("note",),
            errors=("err",),
            changed=1,
            backups=["pg_hba.conf.backup.20240101"],
            context={"path": Path("/var/lib"), "obj": Custom()},
        )

    (record,) = _read_records(logger)
    result = record["result"]
    assert result["status"] == "warning"  # type: ignore[index]
    assert result["warnings"] == ["note"]  # type: ignore[index]
    assert result["errors"] == ["err"]  # type: ignore[index]
    assert result["backups"] == ["pg_hba.conf.backup.20240101"]  # type: ignore[index]
    assert result["context"] == {"path": "/var/lib", "obj": "<custom>"}  # type: ignore[index]


def test_operation_scope_error_defaults_error_list(tmp_path: Path) -> None:
    """Errors should default to the message when not provided."""
    logger = StructuredLogger(tmp_path / "logs")

    with logger.operation("demo") as op:
        op.error("boom", errors=None, context={"value": {1, 2}})

    (record,) = _read_records(logger)
    result = record["result"]
    assert result["status"] == "error"  # type: ignore[index]
    assert result["errors"] == ["boom"]  # type: ignore[index]
    assert result["context"] == {"value": "{1, 2}"}  # type: ignore[index]


def test_operation_scope_defaults_to_success_on_clean_exit(tmp_path: Path) -> None:
    """A scope left without an explicit result records success."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(typer.Exit):
        with logger.operation("demo"):
            raise typer.Exit(code=0)

    (record,) = _read_records(logger)
    assert record["result"]["status"] == "success"  # type: ignore[index]


def test_operation_scope_records_unhandled_exception(tmp_path: Path) -> None:
    """Unexpected exceptions are recorded as errors and re-raised."""
    logger = StructuredLogger(tmp_path / "logs")

    with pytest.raises(RuntimeError):
        with logger.operation("demo"):
            raise RuntimeError("kaboom")

    (record,) = _read_records(logger)
    assert record["result"]["status"] == "error"  # type: ignore[index]
    assert "kaboom" in record["result"]["message"]  # type: ignore[index]


def test_human_log_handler_is_replaced_not_stacked(tmp_path: Path) -> None:
    """A new logger swaps the rotating handler in place of the previous one."""
    first = StructuredLogger(tmp_path / "one")
    second = StructuredLogger(tmp_path / "two")
    human = logging.getLogger(HUMAN_LOGGER_NAME)

    assert len(human.handlers) == 1
    handler = human.handlers[0]
    assert isinstance(handler, logging.FileHandler)
    assert Path(handler.baseFilename) == tmp_path / "two" / "atsctl.log"

    with second.operation("demo") as op:
        op.success("done")
    assert "demo [success] done" in (tmp_path / "two" / "atsctl.log").read_text(encoding="utf-8")

    second.close()
    first.close()
    assert human.handlers == []
    assert handler.stream is None
