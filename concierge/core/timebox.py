"""
Time-boxed calls for every external suspension point (LLM completions,
handler invocations).

run_with_timeout() never raises: it returns a TimeboxResult describing what
happened. A call that overruns keeps running on its worker thread but its
result is discarded.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from concierge.core.logger import get_logger

T = TypeVar("T")

_POOL_WORKERS = 8
_pool: Optional[ThreadPoolExecutor] = None


def _get_pool() -> ThreadPoolExecutor:
    global _pool
    if _pool is None:
        _pool = ThreadPoolExecutor(max_workers=_POOL_WORKERS, thread_name_prefix="Timebox")
    return _pool


@dataclass
class TimeboxResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[BaseException] = None
    timed_out: bool = False
    elapsed_ms: int = 0

    @property
    def error_message(self) -> str:
        if self.timed_out:
            return "timeout"
        return str(self.error) if self.error else ""


def run_with_timeout(
    fn: Callable[..., T],
    timeout_sec: float,
    *args: Any,
    label: str = "call",
    **kwargs: Any,
) -> TimeboxResult[T]:
    """Run fn(*args, **kwargs) with a hard upper bound of timeout_sec."""
    start = time.time()
    future = _get_pool().submit(fn, *args, **kwargs)
    try:
        value = future.result(timeout=max(0.0, timeout_sec))
    except FutureTimeoutError:
        future.cancel()
        elapsed_ms = int((time.time() - start) * 1000)
        get_logger().warning(f"[TIMEBOX] {label} timed out after {elapsed_ms}ms (limit={timeout_sec}s)")
        return TimeboxResult(ok=False, timed_out=True, elapsed_ms=elapsed_ms)
    except Exception as e:
        elapsed_ms = int((time.time() - start) * 1000)
        get_logger().warning(f"[TIMEBOX] {label} failed after {elapsed_ms}ms: {e}")
        return TimeboxResult(ok=False, error=e, elapsed_ms=elapsed_ms)
    return TimeboxResult(ok=True, value=value, elapsed_ms=int((time.time() - start) * 1000))


def shutdown_pool() -> None:
    """Release worker threads (process exit)."""
    global _pool
    if _pool is not None:
        _pool.shutdown(wait=False)
        _pool = None
