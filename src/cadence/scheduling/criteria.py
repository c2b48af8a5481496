"""Immutable store queries and the scheduler's three query builders."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Union

from cadence.scheduling.types import QUEUEABLE_STATUSES, STATUS_INACTIVE


@dataclass(frozen=True)
class EqualsFilter:
    field: str
    value: Any


@dataclass(frozen=True)
class EqualsAnyFilter:
    field: str
    values: tuple[Any, ...]


@dataclass(frozen=True)
class RangeFilter:
    field: str
    lt: Any = None
    lte: Any = None
    gt: Any = None
    gte: Any = None


@dataclass(frozen=True)
class NotFilter:
    """Negates its queries joined with ``operator``."""

    queries: tuple[Filter, ...]
    operator: Literal["and", "or"] = "and"


Filter = Union[EqualsFilter, EqualsAnyFilter, RangeFilter, NotFilter]


@dataclass(frozen=True)
class MinAggregation:
    name: str
    field: str


@dataclass(frozen=True)
class Criteria:
    filters: tuple[Filter, ...] = ()
    aggregations: tuple[MinAggregation, ...] = ()


def due_tasks_criteria(now: datetime) -> Criteria:
    """Tasks whose next execution time has passed and whose status allows queueing."""
    return Criteria(
        filters=(
            RangeFilter("next_execution_time", lt=now),
            EqualsAnyFilter("status", QUEUEABLE_STATUSES),
        ),
    )


def next_execution_criteria() -> Criteria:
    return Criteria(
        filters=(EqualsAnyFilter("status", QUEUEABLE_STATUSES),),
        aggregations=(MinAggregation("next_execution_time", "next_execution_time"),),
    )


def min_run_interval_criteria() -> Criteria:
    return Criteria(
        filters=(NotFilter((EqualsFilter("status", STATUS_INACTIVE),)),),
        aggregations=(MinAggregation("run_interval", "run_interval"),),
    )
