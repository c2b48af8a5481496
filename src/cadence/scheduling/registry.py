"""Task class registry: maps stored task identifiers to runnable task messages."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING, TypeVar

from cadence.infrastructure.config import Configuration

if TYPE_CHECKING:
    from cadence.scheduling.task_service import TaskManager


class TaskClassError(Exception):
    """A stored task refers to a class that cannot be scheduled. Not retried."""

    def __init__(self, message: str, task_class: str) -> None:
        super().__init__(message)
        self.task_class = task_class


class UnknownTaskClassError(TaskClassError):
    pass


class NonConformingTaskClassError(TaskClassError):
    pass


@dataclass
class TaskDeps:
    """Collaborators available to a task while it runs."""

    task_manager: TaskManager
    config: Configuration


class ScheduledTaskMessage(ABC):
    """Base class for every schedulable task.

    Subclasses set ``task_name`` (the identifier stored in ``task_class``) and
    ``default_interval`` (seconds). An instance is the message put on the
    dispatch queue and carries the id of the record it was created for.
    """

    task_name: str = ""
    default_interval: int = 3600

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id

    @classmethod
    def should_run(cls, config: Configuration) -> bool:
        """Deployment-level gate evaluated before each dispatch."""
        return True

    @abstractmethod
    async def run(self, deps: TaskDeps) -> None: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(task_id={self.task_id!r})"

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.task_id == self.task_id  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self), self.task_id))


T = TypeVar("T", bound=type[ScheduledTaskMessage])


class TaskClassRegistry:
    """Populated at process start; resolves identifiers without reflection."""

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}

    def register(self, task_cls: type[ScheduledTaskMessage]) -> None:
        if not task_cls.task_name:
            raise ValueError(f"{task_cls.__name__} has no task_name")
        self.register_as(task_cls.task_name, task_cls)

    def register_as(self, identifier: str, obj: Any) -> None:
        """Register any object under ``identifier``; conformance is checked on resolve."""
        if identifier in self._entries:
            raise ValueError(f'Task class "{identifier}" is already registered')
        self._entries[identifier] = obj

    def task(self, task_cls: T) -> T:
        """Class decorator form of :meth:`register`."""
        self.register(task_cls)
        return task_cls

    def resolve(self, identifier: str) -> type[ScheduledTaskMessage]:
        entry = self._entries.get(identifier)
        if entry is None:
            raise UnknownTaskClassError(f'Tried to schedule "{identifier}", but it is not registered', identifier)
        if not (isinstance(entry, type) and issubclass(entry, ScheduledTaskMessage)):
            raise NonConformingTaskClassError(
                f'Tried to schedule "{identifier}", but class does not extend ScheduledTaskMessage', identifier
            )
        return entry

    def registered(self) -> list[type[ScheduledTaskMessage]]:
        return [
            entry
            for entry in self._entries.values()
            if isinstance(entry, type) and issubclass(entry, ScheduledTaskMessage)
        ]

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def __len__(self) -> int:
        return len(self._entries)

