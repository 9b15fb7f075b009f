"""Error taxonomy for the scheduling engine.

Every error is terminal for its input: feeding the same task list back in
reproduces the same error with the same message.
"""

from typing import Any, Dict, Sequence


class SchedulingError(ValueError):
    """Base class for every failure the engine reports."""

    code = "scheduling_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class InvalidInputShape(SchedulingError):
    code = "invalid_input_shape"


class InvalidTaskError(SchedulingError):
    code = "invalid_task"

    def __init__(self, message: str = "every task must have a string title"):
        super().__init__(message)


class DuplicateTaskError(SchedulingError):
    code = "duplicate_task"

    def __init__(self, title: str):
        super().__init__(f"duplicate task title: {title}")
        self.title = title


class InvalidDateError(SchedulingError):
    code = "invalid_date"

    def __init__(self, title: str, value: Any):
        super().__init__(f'invalid dueDate for "{title}"')
        self.title = title
        self.value = value


class UnknownDependencyError(SchedulingError):
    code = "unknown_dependency"

    def __init__(self, title: str, dependency: Any):
        super().__init__(f'task "{title}" depends on unknown task "{dependency}"')
        self.title = title
        self.dependency = dependency


class CycleError(SchedulingError):
    """The graph could not be drained.

    `blocked` holds every task left with unresolved dependencies: the tasks on
    a cycle plus everything downstream of one. `cycle` is one concrete loop
    among them, written as a dependency chain that returns to its start.
    """

    code = "cycle"

    def __init__(self, blocked: Sequence[str], cycle: Sequence[str] = ()):
        super().__init__("cycle detected among tasks: " + ", ".join(blocked))
        self.blocked = tuple(blocked)
        self.cycle = tuple(cycle)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["blockedTasks"] = list(self.blocked)
        data["cycle"] = list(self.cycle)
        return data
