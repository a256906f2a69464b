from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from yield_loop.typedefs import Coro


def checkpoint(value: Any = None) -> Coro[None]:
    """Yields control back to the scheduler. The task is re-queued as-is."""
    yield value
