"""Scheduled task persistence: criteria search, conditional updates, aggregation, run logging."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from cadence.infrastructure.database import from_storage_time, to_storage_time
from cadence.scheduling.criteria import (
    Criteria,
    EqualsAnyFilter,
    EqualsFilter,
    Filter,
    NotFilter,
    RangeFilter,
)
from cadence.scheduling.types import Context, MinResult, ScheduledTask, TaskRunLog

# Queryable fields -> columns. Anything else is rejected before reaching SQL.
FIELD_COLUMNS: dict[str, str] = {
    "id": "id",
    "name": "name",
    "task_class": "task_class",
    "status": "status",
    "run_interval": "run_interval",
    "next_execution_time": "next_execution_time",
    "last_execution_time": "last_execution_time",
    "created_at": "created_at",
    "updated_at": "updated_at",
}

TIME_FIELDS = {"next_execution_time", "last_execution_time", "created_at", "updated_at"}

# Fields an update payload may change.
WRITABLE_FIELDS = {"name", "task_class", "status", "run_interval", "next_execution_time", "last_execution_time"}

_RANGE_OPERATORS = (("lt", "<"), ("lte", "<="), ("gt", ">"), ("gte", ">="))


def _column(field: str) -> str:
    try:
        return FIELD_COLUMNS[field]
    except KeyError:
        raise ValueError(f"Unknown scheduled task field: {field}") from None


def _param(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_storage_time(value)
    return value


def _compile_filter(flt: Filter, params: list[Any]) -> str:
    if isinstance(flt, EqualsFilter):
        if flt.value is None:
            return f"{_column(flt.field)} IS NULL"
        params.append(_param(flt.value))
        return f"{_column(flt.field)} = ?"
    if isinstance(flt, EqualsAnyFilter):
        if not flt.values:
            return "0"
        params.extend(_param(v) for v in flt.values)
        placeholders = ", ".join("?" for _ in flt.values)
        return f"{_column(flt.field)} IN ({placeholders})"
    if isinstance(flt, RangeFilter):
        column = _column(flt.field)
        parts: list[str] = []
        for attr, op in _RANGE_OPERATORS:
            bound = getattr(flt, attr)
            if bound is not None:
                params.append(_param(bound))
                parts.append(f"{column} {op} ?")
        return " AND ".join(parts) if parts else "1"
    if isinstance(flt, NotFilter):
        joiner = " AND " if flt.operator == "and" else " OR "
        inner = joiner.join(f"({_compile_filter(q, params)})" for q in flt.queries)
        return f"NOT ({inner})" if inner else "1"
    raise TypeError(f"Unsupported filter: {type(flt).__name__}")


def compile_where(criteria: Criteria) -> tuple[str, list[Any]]:
    """Translate criteria filters into a WHERE clause (all filters AND-ed)."""
    params: list[Any] = []
    clauses = [f"({_compile_filter(f, params)})" for f in criteria.filters]
    if not clauses:
        return "", params
    return "WHERE " + " AND ".join(clauses), params


class TaskRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    # --- Generic repository interface ---

    def search(self, criteria: Criteria, context: Context) -> list[ScheduledTask]:
        where, params = compile_where(criteria)
        rows = self._db.execute(
            f"SELECT * FROM scheduled_tasks {where} ORDER BY next_execution_time, id", params
        ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def update(
        self,
        payloads: list[dict[str, Any]],
        context: Context,
        expected_status: str | Iterable[str] | None = None,
    ) -> int:
        """Apply field diffs keyed by ``id`` and commit. Returns affected rows.

        With ``expected_status`` a row only changes while its current status is
        one of those values, which turns the write into a claim.
        """
        if isinstance(expected_status, str):
            expected_status = (expected_status,)
        expected = tuple(expected_status) if expected_status is not None else None
        now = to_storage_time(datetime.now(UTC))
        affected = 0
        try:
            for payload in payloads:
                diff = dict(payload)
                task_id = diff.pop("id", None)
                if task_id is None:
                    raise ValueError("Update payload requires an id")
                for key in diff:
                    if key not in WRITABLE_FIELDS:
                        raise ValueError(f"Field is not writable: {key}")
                if not diff:
                    continue

                assignments = [f"{_column(key)} = ?" for key in diff]
                values: list[Any] = [_param(v) for v in diff.values()]
                assignments.append("updated_at = ?")
                values.append(now)

                sql = f"UPDATE scheduled_tasks SET {', '.join(assignments)} WHERE id = ?"
                values.append(task_id)
                if expected is not None:
                    sql += f" AND status IN ({', '.join('?' for _ in expected)})"
                    values.extend(expected)

                affected += self._db.execute(sql, values).rowcount
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise
        return affected

    def aggregate(self, criteria: Criteria, context: Context) -> dict[str, MinResult]:
        where, params = compile_where(criteria)
        results: dict[str, MinResult] = {}
        for aggregation in criteria.aggregations:
            row = self._db.execute(
                f"SELECT MIN({_column(aggregation.field)}) FROM scheduled_tasks {where}", params
            ).fetchone()
            value = row[0] if row else None
            if value is not None and aggregation.field in TIME_FIELDS:
                value = from_storage_time(value)
            results[aggregation.name] = MinResult(name=aggregation.name, min=value)
        return results

    # --- Record management ---

    def create_task(self, task: ScheduledTask) -> None:
        self._db.execute(
            """INSERT INTO scheduled_tasks
               (id, name, task_class, status, run_interval, next_execution_time, last_execution_time, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                task.id, task.name, task.task_class, task.status, task.run_interval,
                to_storage_time(task.next_execution_time),
                to_storage_time(task.last_execution_time) if task.last_execution_time else None,
                to_storage_time(task.created_at),
            ),
        )
        self._db.commit()

    def get_task_by_id(self, id: str) -> ScheduledTask | None:
        row = self._db.execute("SELECT * FROM scheduled_tasks WHERE id = ?", (id,)).fetchone()
        if not row:
            return None
        return self._row_to_task(row)

    def get_task_by_class(self, task_class: str) -> ScheduledTask | None:
        row = self._db.execute(
            "SELECT * FROM scheduled_tasks WHERE task_class = ? ORDER BY created_at LIMIT 1", (task_class,)
        ).fetchone()
        if not row:
            return None
        return self._row_to_task(row)

    def get_all_tasks(self) -> list[ScheduledTask]:
        rows = self._db.execute("SELECT * FROM scheduled_tasks ORDER BY name").fetchall()
        return [self._row_to_task(row) for row in rows]

    def log_task_run(self, log: TaskRunLog) -> None:
        self._db.execute(
            """INSERT INTO task_run_logs (task_id, run_at, duration_ms, status, error)
               VALUES (?, ?, ?, ?, ?)""",
            (log.task_id, to_storage_time(log.run_at), log.duration_ms, log.status, log.error),
        )
        self._db.commit()

    def get_run_logs(self, task_id: str) -> list[TaskRunLog]:
        rows = self._db.execute(
            "SELECT * FROM task_run_logs WHERE task_id = ? ORDER BY run_at", (task_id,)
        ).fetchall()
        return [
            TaskRunLog(
                task_id=row["task_id"],
                run_at=from_storage_time(row["run_at"]),
                duration_ms=row["duration_ms"],
                status=row["status"],
                error=row["error"],
            )
            for row in rows
        ]

    def delete_run_logs_before(self, cutoff: datetime) -> int:
        result = self._db.execute("DELETE FROM task_run_logs WHERE run_at < ?", (to_storage_time(cutoff),))
        self._db.commit()
        return result.rowcount

    def _row_to_task(self, row: sqlite3.Row) -> ScheduledTask:
        return ScheduledTask(
            id=row["id"],
            name=row["name"],
            task_class=row["task_class"],
            status=row["status"],
            run_interval=row["run_interval"],
            next_execution_time=from_storage_time(row["next_execution_time"]),
            last_execution_time=from_storage_time(row["last_execution_time"]),
            created_at=from_storage_time(row["created_at"]),
            updated_at=from_storage_time(row["updated_at"]) if "updated_at" in row.keys() else None,
        )
