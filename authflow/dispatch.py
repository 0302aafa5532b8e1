"""UI-affinity execution contexts.

Session and registry state, and every completion callback, are touched
from a single "UI" context. A dispatcher runs plain callables on that
context and runs coroutines (the PKCE token exchange) elsewhere,
marshalling their completion back.
"""

from __future__ import annotations

import asyncio
import threading
import time

from abc import ABC, abstractmethod
from concurrent.futures import Future
from typing import TYPE_CHECKING, Any, TypeVar


if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine


T = TypeVar("T")


class Dispatcher(ABC):
    """Schedules work on the UI-affinity execution context."""

    @abstractmethod
    def call_soon(self, func: Callable[..., Any], *args: Any) -> None:
        """Run ``func(*args)`` on the UI context."""

    @abstractmethod
    def run_coroutine(
        self,
        coro: Coroutine[Any, Any, T],
        callback: Callable[[Future[T]], Any],
    ) -> None:
        """Run ``coro`` to completion, then ``callback(future)`` on the UI context.

        Parameters
        ----------
        coro : Coroutine
            The coroutine to run.
        callback : callable
            Receives the finished future; never called more than once.
        """


# Module-level background loop for coroutines started from sync code
class _BackgroundLoopHolder:
    """Holder for the background event loop to avoid global statement."""

    loop: asyncio.AbstractEventLoop | None = None
    thread: threading.Thread | None = None


_background_holder = _BackgroundLoopHolder()
_background_lock = threading.Lock()


def _get_or_create_background_loop() -> asyncio.AbstractEventLoop:
    """Get or create the event loop that runs coroutines for sync callers.

    The loop runs in a daemon thread and persists across calls, so HTTP
    clients bound to it stay usable between exchanges.
    """
    with _background_lock:
        if _background_holder.loop is not None and _background_holder.loop.is_running():
            return _background_holder.loop

        loop = asyncio.new_event_loop()
        _background_holder.loop = loop

        def run_loop() -> None:
            asyncio.set_event_loop(loop)
            loop.run_forever()

        _background_holder.thread = threading.Thread(
            target=run_loop, name="authflow-loop", daemon=True
        )
        _background_holder.thread.start()

        for _ in range(50):  # 500ms max wait
            if loop.is_running():
                break
            time.sleep(0.01)

        return loop


def run_async(coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
    """Run an async coroutine from sync code and wait for its result.

    Parameters
    ----------
    coro : Coroutine
        The coroutine to run.
    timeout : float, optional
        Timeout in seconds. Default waits indefinitely.

    Returns
    -------
    T
        The result of the coroutine.

    Raises
    ------
    RuntimeError
        If called from the background loop itself (would deadlock).
    """
    loop = _get_or_create_background_loop()
    try:
        running_loop = asyncio.get_running_loop()
    except RuntimeError:
        running_loop = None
    if running_loop is loop:
        raise RuntimeError(
            "run_async() cannot be called from the authflow background loop. "
            "Use 'await' directly instead."
        )
    future = asyncio.run_coroutine_threadsafe(coro, loop)
    return future.result(timeout=timeout)


class ImmediateDispatcher(Dispatcher):
    """Dispatcher for single-threaded hosts such as CLIs and tests.

    Callables run inline on the calling thread. Coroutines run on a
    shared background loop and the caller blocks until they finish.
    """

    def call_soon(self, func: Callable[..., Any], *args: Any) -> None:
        func(*args)

    def run_coroutine(
        self,
        coro: Coroutine[Any, Any, T],
        callback: Callable[[Future[T]], Any],
    ) -> None:
        done: Future[T] = Future()
        try:
            done.set_result(run_async(coro))
        except Exception as exc:  # noqa: BLE001
            done.set_exception(exc)
        callback(done)


class AsyncioDispatcher(Dispatcher):
    """Dispatcher bound to the event loop that owns the UI context.

    Parameters
    ----------
    loop : asyncio.AbstractEventLoop
        The loop whose thread is the UI context.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        """Initialize the dispatcher."""
        self.loop = loop

    def call_soon(self, func: Callable[..., Any], *args: Any) -> None:
        self.loop.call_soon_threadsafe(func, *args)

    def run_coroutine(
        self,
        coro: Coroutine[Any, Any, T],
        callback: Callable[[Future[T]], Any],
    ) -> None:
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        future.add_done_callback(lambda f: self.loop.call_soon_threadsafe(callback, f))
