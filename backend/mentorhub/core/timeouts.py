"""
Wall-clock bounds for multi-step server operations.

The operation and a timer race; whichever settles first decides the
outcome. The losing operation is NOT cancelled: a blocking database call
keeps running in its worker thread until the driver returns. Under
sustained timeouts those threads and their connections pile up, which is
why the engine also sets connect and statement timeouts (see database.py).
"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

from mentorhub.core.errors import OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _discard_late_outcome(operation_name: str) -> Callable[[asyncio.Future], None]:
    def callback(future: asyncio.Future) -> None:
        # Retrieve the exception so asyncio does not report it as never retrieved
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.debug("Discarded late failure of %s: %r", operation_name, exc)
        else:
            logger.debug("Discarded late result of %s", operation_name)

    return callback


async def race_with_timeout(
    operation: Awaitable[T],
    timeout_seconds: float,
    operation_name: str = "Operation",
) -> T:
    """
    Await an operation for at most timeout_seconds.

    Raises OperationTimeoutError if the timer fires first; the operation's
    eventual result or error is then dropped.
    """
    task = asyncio.ensure_future(operation)
    done, _ = await asyncio.wait({task}, timeout=timeout_seconds)
    if task in done:
        return task.result()

    task.add_done_callback(_discard_late_outcome(operation_name))
    logger.warning(
        "%s exceeded %.1fs; abandoning it without cancellation",
        operation_name,
        timeout_seconds,
    )
    raise OperationTimeoutError(operation_name, timeout_seconds)


async def run_blocking_with_timeout(
    func: Callable[..., T],
    *args: Any,
    timeout_seconds: float,
    operation_name: str = "Operation",
) -> T:
    """Run a blocking callable in the default executor, bounded by race_with_timeout"""
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, functools.partial(func, *args))
    return await race_with_timeout(future, timeout_seconds, operation_name)
