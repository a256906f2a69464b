from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from yield_loop.exceptions import InvalidStateError
from yield_loop.task import Task
from yield_loop.task.state import Created, Done, Suspended

if TYPE_CHECKING:
    from yield_loop.typedefs import Coro


def record_sent() -> Coro[list[str]]:
    received = []
    received.append((yield "first"))
    received.append((yield "second"))
    return received


def fail_after_one_step() -> Coro[None]:
    yield "step"
    raise ValueError("Oopsie!")


class TestResume:
    def test_first_resume_ignores_value(self) -> None:
        task = Task(task_id=1, gen=record_sent())
        assert isinstance(task.state, Created)

        assert task.resume("ignored") == "first"
        assert isinstance(task.state, Suspended)
        assert task.resume("a") == "second"
        assert task.resume("b") is None

        assert task.is_finished
        assert task.result() == ["a", "b"]

    def test_resume_after_finish_raises(self) -> None:
        task = Task(task_id=1, gen=record_sent())
        for value in (None, "a", "b"):
            task.resume(value)

        with pytest.raises(InvalidStateError):
            task.resume("c")

    def test_pending_value_keeps_only_latest(self) -> None:
        task = Task(task_id=1, gen=record_sent())
        task.set_pending_value("old")
        task.set_pending_value("new")

        assert task.pop_pending_value() == "new"
        assert task.pop_pending_value() is None


class TestResult:
    def test_result_before_finish_raises(self) -> None:
        task = Task(task_id=1, gen=record_sent())
        with pytest.raises(InvalidStateError):
            task.result()

        task.resume()
        with pytest.raises(InvalidStateError):
            task.result()
        with pytest.raises(InvalidStateError):
            _ = task.outcome

    def test_failure_is_kept_without_observers(self) -> None:
        task = Task(task_id=1, gen=fail_after_one_step())
        task.resume()

        assert task.resume() is None
        assert task.is_finished
        assert task.failed
        assert not task.observed

        with pytest.raises(ValueError, match="Oopsie!"):
            task.result()
        assert task.observed

    def test_base_exceptions_still_propagate(self) -> None:
        def interrupted() -> Coro[None]:
            yield "step"
            raise KeyboardInterrupt

        task = Task(task_id=1, gen=interrupted())
        task.resume()
        with pytest.raises(KeyboardInterrupt):
            task.resume()
        assert task.failed

    def test_observed_failure_is_recorded(self) -> None:
        task = Task(task_id=1, gen=fail_after_one_step())
        seen: list[Task] = []
        task.on_result(seen.append)

        task.resume()
        assert task.resume() is None

        assert seen == [task]
        assert isinstance(task.state, Done)
        assert isinstance(task.outcome, ValueError)
        with pytest.raises(ValueError, match="Oopsie!"):
            task.result()


class TestOnResult:
    def test_fires_once_at_completion(self) -> None:
        task = Task(task_id=1, gen=record_sent())
        finished_when_called: list[bool] = []
        task.on_result(lambda t: finished_when_called.append(t.is_finished))

        task.resume()
        task.resume("a")
        assert finished_when_called == []

        task.resume("b")
        assert finished_when_called == [True]

    def test_fires_synchronously_when_already_finished(self) -> None:
        task = Task(task_id=1, gen=record_sent())
        for value in (None, "a", "b"):
            task.resume(value)

        seen: list[Task] = []
        task.on_result(seen.append)
        assert seen == [task]

    def test_callbacks_fire_in_registration_order(self) -> None:
        task = Task(task_id=1, gen=record_sent())
        order: list[int] = []
        task.on_result(lambda _: order.append(1))
        task.on_result(lambda _: order.append(2))
        task.on_result(lambda _: order.append(3))

        for value in (None, "a", "b"):
            task.resume(value)

        assert order == [1, 2, 3]
