"""Tests for the task class registry."""

import pytest

from cadence.infrastructure.config import Configuration
from cadence.scheduling.registry import (
    NonConformingTaskClassError,
    ScheduledTaskMessage,
    TaskClassError,
    TaskClassRegistry,
    UnknownTaskClassError,
)


class EchoTask(ScheduledTaskMessage):
    task_name = "test.echo"
    default_interval = 120

    async def run(self, deps):
        return None


class GatedTask(ScheduledTaskMessage):
    task_name = "test.gated"

    @classmethod
    def should_run(cls, config):
        return config.get_bool("gated.enabled")

    async def run(self, deps):
        return None


class NotATask:
    pass


class TestRegistration:
    def test_register_and_resolve(self):
        registry = TaskClassRegistry()
        registry.register(EchoTask)
        assert registry.resolve("test.echo") is EchoTask
        assert "test.echo" in registry

    def test_decorator_registers(self):
        registry = TaskClassRegistry()

        @registry.task
        class Decorated(ScheduledTaskMessage):
            task_name = "test.decorated"

            async def run(self, deps):
                return None

        assert registry.resolve("test.decorated") is Decorated

    def test_duplicate_rejected(self):
        registry = TaskClassRegistry()
        registry.register(EchoTask)
        with pytest.raises(ValueError, match="already registered"):
            registry.register(EchoTask)

    def test_missing_task_name_rejected(self):
        class Nameless(ScheduledTaskMessage):
            async def run(self, deps):
                return None

        with pytest.raises(ValueError, match="no task_name"):
            TaskClassRegistry().register(Nameless)

    def test_registered_lists_only_conforming(self):
        registry = TaskClassRegistry()
        registry.register(EchoTask)
        registry.register_as("test.bogus", NotATask)
        assert registry.registered() == [EchoTask]
        assert len(registry) == 2


class TestResolve:
    def test_unknown_identifier(self):
        with pytest.raises(UnknownTaskClassError) as exc_info:
            TaskClassRegistry().resolve("test.missing")
        assert exc_info.value.task_class == "test.missing"
        assert isinstance(exc_info.value, TaskClassError)

    def test_non_conforming_class(self):
        registry = TaskClassRegistry()
        registry.register_as("test.bogus", NotATask)
        with pytest.raises(NonConformingTaskClassError, match="does not extend ScheduledTaskMessage"):
            registry.resolve("test.bogus")

    def test_non_class_entry(self):
        registry = TaskClassRegistry()
        registry.register_as("test.function", lambda task_id: None)
        with pytest.raises(NonConformingTaskClassError):
            registry.resolve("test.function")


class TestMessages:
    def test_instance_carries_task_id(self):
        message = EchoTask(task_id="task-1")
        assert message.task_id == "task-1"
        assert message == EchoTask("task-1")
        assert message != GatedTask("task-1")

    def test_default_should_run(self):
        assert EchoTask.should_run(Configuration()) is True

    def test_config_driven_should_run(self):
        assert GatedTask.should_run(Configuration({"gated": {"enabled": True}})) is True
        assert GatedTask.should_run(Configuration({"gated": {"enabled": "no"}})) is False
        assert GatedTask.should_run(Configuration()) is False
