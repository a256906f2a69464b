class YieldLoopError(Exception):
    """Base class for all errors raised by yield-loop."""


class InvalidStateError(YieldLoopError):
    """Raised when a task is used in a way its current state does not allow."""


class AlreadyScheduledError(YieldLoopError):
    """Raised when scheduling a task which is already queued, waiting or done."""


class IntegrityError(YieldLoopError):
    """A violated scheduler precondition. Aborts the whole run."""


class StrandedTasksError(YieldLoopError):
    """Raised by a strict scheduler that drained with unfinished tasks."""


class ClosedResourceError(YieldLoopError):
    """Thrown when the relevant socket has been closed."""


class EndOfStreamError(YieldLoopError):
    """Thrown when the peer has closed its end of the connection."""
