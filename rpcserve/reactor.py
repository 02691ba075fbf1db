"""Event loop executor: either spawns a new event loop thread or re-uses a shared loop."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Coroutine, TypeVar

log = logging.getLogger(__name__)

R = TypeVar("R")

DEFAULT_NAME = "event.loop"


class RpcEventLoop:
    """An asyncio event loop running in its own thread.

    Closing the loop lets every task already spawned run to completion
    before the thread finishes.
    """

    def __init__(self, name: str | None = None) -> None:
        self._loop = asyncio.new_event_loop()
        self._stop: asyncio.Event | None = None
        self._closed = False
        self._lock = threading.Lock()
        started = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(started,), name=name, daemon=True
        )
        self._thread.start()
        started.wait()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The asyncio loop driven by this thread."""
        return self._loop

    @property
    def is_running(self) -> bool:
        """True while the loop thread is alive."""
        return self._thread.is_alive()

    def _run(self, started: threading.Event) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._main(started))
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())
        finally:
            self._loop.close()

    async def _main(self, started: threading.Event) -> None:
        self._stop = asyncio.Event()
        started.set()
        await self._stop.wait()
        current = asyncio.current_task()
        while True:
            pending = [task for task in asyncio.all_tasks() if task is not current]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)

    def spawn(self, coro: Coroutine[Any, Any, R]) -> concurrent.futures.Future[R]:
        """Schedule ``coro`` on the loop and return a future for its result."""
        with self._lock:
            if self._closed:
                coro.close()
                raise RuntimeError("event loop is closed")
            return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def close(self) -> None:
        """Ask the loop to finish once its pending tasks are done."""
        with self._lock:
            if self._closed:
                log.warning("Event Loop is already finished.")
                return
            self._closed = True
            try:
                self._loop.call_soon_threadsafe(self._stop.set)
            except RuntimeError as error:
                log.warning("Event Loop is already finished. %s", error)

    def wait(self) -> None:
        """Block until the loop thread has finished."""
        self._thread.join()

    def __enter__(self) -> RpcEventLoop:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
        self.wait()


class Executor:
    """An initialized executor: a shared loop, or a spawned loop this executor owns."""

    def __init__(
        self, loop: asyncio.AbstractEventLoop | RpcEventLoop, owned: bool = False
    ) -> None:
        if owned and not isinstance(loop, RpcEventLoop):
            raise TypeError("only a spawned RpcEventLoop can be owned")
        self._source = loop
        self.owned = owned

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The asyncio loop tasks are spawned onto."""
        if isinstance(self._source, RpcEventLoop):
            return self._source.loop
        return self._source

    def spawn(self, coro: Coroutine[Any, Any, R]) -> concurrent.futures.Future[R]:
        """Schedule ``coro`` on the underlying loop."""
        if isinstance(self._source, RpcEventLoop):
            return self._source.spawn(coro)
        return asyncio.run_coroutine_threadsafe(coro, self._source)

    def close(self) -> None:
        """Close the underlying event loop, if this executor owns it."""
        if self.owned:
            self._source.close()

    def wait(self) -> None:
        """Wait for the underlying event loop to finish, if this executor owns it."""
        if self.owned:
            self._source.wait()


def initialize(
    shared: asyncio.AbstractEventLoop | RpcEventLoop | None = None,
    name: str | None = DEFAULT_NAME,
) -> Executor:
    """Use ``shared`` if given; otherwise spawn a new event loop named ``name``."""
    if shared is not None:
        return Executor(shared, owned=False)
    return Executor(RpcEventLoop(name), owned=True)