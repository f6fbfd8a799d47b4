from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable

from ai_attendance.errors import TransportError


def call_with_deadline(fn: Callable[..., Any], timeout: float, *args, label: str = "request", **kwargs) -> Any:
    """Run ``fn`` and wait at most ``timeout`` seconds for its result.

    Each call gets its own worker, so the deadline covers only ``fn``.
    Raises TransportError once the deadline passes; exceptions raised by
    ``fn`` itself propagate unchanged.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="deadline")
    future = executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        raise TransportError(f"{label} timed out after {int(timeout * 1000)}ms")
    finally:
        # An overrunning call keeps its thread until the request itself gives up
        executor.shutdown(wait=False)
