"""A stream of accepted connections that pauses after errors instead of failing."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, TypeVar, Union

log = logging.getLogger(__name__)

T = TypeVar("T")

_CONNECTION_ERRORS = (ConnectionRefusedError, ConnectionAbortedError, ConnectionResetError)


def is_connection_error(error: BaseException) -> bool:
    """True if ``error`` is a refused, aborted or reset connection."""
    return isinstance(error, _CONNECTION_ERRORS)


class SuspendableStream(Generic[T]):
    """Wraps an accept source and stops accepting for a while after an error.

    A temporary error (for instance too many open files) would otherwise end
    the whole server. Connection errors are skipped; other ``OSError``s pause
    accepting with an exponential delay, reset after the next success.
    ``accept`` is an async callable or an async iterator; it ends the stream
    by raising ``StopAsyncIteration``.
    """

    def __init__(
        self, accept: Union[Callable[[], Awaitable[T]], AsyncIterator[T]]
    ) -> None:
        if hasattr(accept, "__anext__"):
            self._accept: Callable[[], Awaitable[Any]] = accept.__anext__
        else:
            self._accept = accept
        self.next_delay = 0.020
        self.initial_delay = 0.010
        self.max_delay = 5.0

    def __aiter__(self) -> SuspendableStream[T]:
        return self

    async def __anext__(self) -> T:
        while True:
            try:
                item = await self._accept()
            except OSError as error:
                if is_connection_error(error):
                    log.warning("Connection Error: %r", error)
                    continue
                if self.next_delay < self.max_delay:
                    self.next_delay *= 2
                log.warning("Error accepting connection: %s", error)
                log.warning(
                    "The server will stop accepting connections for %.3fs", self.next_delay
                )
                await asyncio.sleep(self.next_delay)
                continue
            if self.next_delay > self.initial_delay:
                self.next_delay = self.initial_delay
            return item