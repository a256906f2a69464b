"""Yield Loop package."""

__version__ = "0.1.0"

from yield_loop.scheduler import Scheduler, run
from yield_loop.syscalls import gather, join, spawn, wait_readable, wait_writable
from yield_loop.task import Task

__all__ = [
    "Scheduler",
    "Task",
    "gather",
    "join",
    "run",
    "spawn",
    "wait_readable",
    "wait_writable",
]
