from dataclasses import dataclass


@dataclass(slots=True, kw_only=True)
class Created:
    """Task exists but hasn't been resumed yet."""


@dataclass(slots=True, kw_only=True)
class Suspended:
    """Task has been resumed and stopped at a suspension point."""


@dataclass(slots=True, kw_only=True)
class Done[T]:
    """Task has finished, either by returning or by raising."""

    result: T | None = None
    error: BaseException | None = None


type TaskState[T] = Created | Suspended | Done[T]
