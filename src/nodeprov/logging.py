"""Structured operation logging for nodeprov.

Every CLI invocation wraps its work in :meth:`StructuredLogger.operation`.
The resulting :class:`OperationScope` collects named steps and a final result
and appends one JSON document per operation to ``operations.jsonl`` inside the
configured log directory.

Logging must never break provisioning: if the log directory cannot be
created, or a write fails, the logger disables itself and later operations
become no-ops.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

LOGGER = logging.getLogger(__name__)

OPERATIONS_LOG = "operations.jsonl"
MASKED_VALUE = "***"
_SECRET_MARKERS = ("password", "secret", "passphrase", "token")


class OperationScope:
    """Collect steps and the final result for a single operation."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Initialise the scope for *command*."""
        self._logger = logger
        self.command = command
        self.op_id = uuid.uuid4().hex
        self.started_at = datetime.now(UTC)
        self._started_monotonic = time.monotonic()
        self._args = _mask_secrets(dict(args or {}))
        self._target = dict(target or {})
        self._steps: list[dict[str, object]] = []
        self._result: dict[str, object] | None = None

    @property
    def steps(self) -> list[dict[str, object]]:
        """Return a copy of the steps recorded so far."""
        return [dict(step) for step in self._steps]

    @property
    def result(self) -> dict[str, object] | None:
        """Return the recorded result, if any."""
        return dict(self._result) if self._result is not None else None

    def add_step(self, name: str, *, status: str = "success", detail: str | None = None) -> None:
        """Record a named step within the operation."""
        step: dict[str, object] = {
            "name": name,
            "status": status,
            "at": datetime.now(UTC).isoformat(),
        }
        if detail is not None:
            step["detail"] = detail
        self._steps.append(step)
        LOGGER.debug("%s: %s [%s] %s", self.command, name, status, detail or "")

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a successful outcome."""
        self._set_result(
            "success",
            message,
            changed=changed,
            warnings=warnings,
            errors=None,
            context=context,
            rc=0,
        )

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a completed outcome that needs operator attention."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=warnings if warnings is not None else [message],
            errors=errors,
            context=context,
            rc=0,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int = 1,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Record a failed outcome."""
        self._set_result(
            "error",
            message,
            changed=0,
            warnings=None,
            errors=errors if errors else [message],
            context=context,
            rc=int(rc),
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int,
        warnings: Sequence[str] | None,
        errors: Sequence[str] | None,
        context: Mapping[str, object] | None,
        rc: int,
    ) -> None:
        self._result = {
            "status": status,
            "message": message,
            "changed": changed,
            "warnings": list(warnings or []),
            "errors": list(errors or []),
            "context": _sanitise(dict(context or {})),
            "rc": rc,
        }

    def to_record(self) -> dict[str, object]:
        """Return the JSON-safe record for this operation."""
        duration_ms = int((time.monotonic() - self._started_monotonic) * 1000)
        return {
            "op_id": self.op_id,
            "command": self.command,
            "started_at": self.started_at.isoformat(),
            "duration_ms": duration_ms,
            "args": _sanitise(self._args),
            "target": _sanitise(self._target),
            "steps": self._steps,
            "result": self._result,
        }


class StructuredLogger:
    """Append operation records to a JSON lines file."""

    def __init__(self, log_dir: Path) -> None:
        """Prepare *log_dir*; disable logging when it cannot be created."""
        self._log_dir = log_dir
        self._operations_log_path = log_dir / OPERATIONS_LOG
        self._enabled = True
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("Structured logging disabled; cannot create %s: %s", log_dir, exc)
            self._enabled = False

    @property
    def operations_log_path(self) -> Path:
        """Return the path of the operations log."""
        return self._operations_log_path

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it on exit."""
        scope = OperationScope(self, command, args=args, target=target)
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(str(exc) or type(exc).__name__, rc=1)
            raise
        else:
            if scope.result is None:
                scope.success("Completed.")
        finally:
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError as exc:
            LOGGER.warning("Structured logging disabled after write failure: %s", exc)
            self._enabled = False


def _mask_secrets(values: Mapping[str, object]) -> dict[str, object]:
    masked: dict[str, object] = {}
    for key, value in values.items():
        if any(marker in key.lower() for marker in _SECRET_MARKERS) and value is not None:
            masked[key] = MASKED_VALUE
        else:
            masked[key] = value
    return masked


def _sanitise(value: object) -> object:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitise(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitise(item) for item in value]
    return str(value)


__all__ = ["OperationScope", "StructuredLogger"]
