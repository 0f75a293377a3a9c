"""Async utility helpers for offloading blocking backend invocations.

This module provides:
- a thread-pool bridge (`run_blocking`) for awaiting blocking work, and
- a fire-and-forget launcher (`submit_detached`) that gives each call its own
  daemon thread, so work that never returns cannot starve later calls.
"""

from __future__ import annotations

import asyncio
import atexit
import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

_IO_EXECUTOR = ThreadPoolExecutor(
    max_workers=4, thread_name_prefix="nowplaying-remote-io"
)
_DETACHED_IDS = itertools.count(1)


@atexit.register
def _shutdown_io_executor() -> None:
    _IO_EXECUTOR.shutdown(wait=False, cancel_futures=True)


async def run_blocking(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Run blocking callable on dedicated IO executor and await its result."""
    if not callable(func):
        raise TypeError("func must be callable")
    loop = asyncio.get_running_loop()
    if kwargs:
        bound = partial(func, *args, **kwargs)
        future = loop.run_in_executor(_IO_EXECUTOR, bound)
    else:
        future = loop.run_in_executor(_IO_EXECUTOR, func, *args)
    # Some environments can miss thread->loop wakeups for executor completion.
    # Polling with a short timeout keeps completion deterministic.
    while True:
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=0.1)
        except asyncio.TimeoutError:
            continue


def submit_detached(
    func: Callable[..., Any], /, *args: Any, **kwargs: Any
) -> threading.Thread:
    """Start blocking callable on its own daemon thread without waiting for it.

    Nothing is shared with `run_blocking`'s pool: a call that hangs forever is
    abandoned with its thread and never delays the next one.
    """
    if not callable(func):
        raise TypeError("func must be callable")
    thread = threading.Thread(
        target=_run_detached,
        args=(func, args, kwargs),
        name=f"nowplaying-remote-cmd-{next(_DETACHED_IDS)}",
        daemon=True,
    )
    thread.start()
    return thread


def _run_detached(
    func: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any]
) -> None:
    try:
        func(*args, **kwargs)
    except Exception as exc:
        logger.error("Background task failed: %s", exc, exc_info=exc)
