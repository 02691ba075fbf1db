"""JSON-RPC server over stdin/stdout, one request per line."""

from __future__ import annotations

import asyncio
import inspect
import logging
import sys
from typing import Any, TextIO

log = logging.getLogger(__name__)


def _strip_line_ending(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


async def process(handler: Any, line: str) -> str:
    """Handle one request line; return the response, or an empty string if there is none.

    ``handler`` is an object with a ``handle_request`` method, or a callable,
    taking the request text and returning the response text (or an awaitable
    of it), or None when the request produces no response.
    """
    handle = getattr(handler, "handle_request", handler)
    result = handle(line)
    if inspect.isawaitable(result):
        result = await result
    if result is None:
        log.info("JSON RPC request produced no response: %r", line)
        return ""
    return result


class ServerBuilder:
    """Builds a stdio server around a request handler."""

    def __init__(self, handler: Any) -> None:
        self.handler = handler

    def build(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """Serve requests until EOF, writing each response on its own line.

        Reads from ``stdin`` (default ``sys.stdin``) and writes to ``stdout``
        (default ``sys.stdout``).
        """
        source = sys.stdin if stdin is None else stdin
        sink = sys.stdout if stdout is None else stdout
        asyncio.run(self._serve(source, sink))

    async def _serve(self, stdin: TextIO, stdout: TextIO) -> None:
        while True:
            line = await asyncio.to_thread(stdin.readline)
            if not line:
                break
            response = await process(self.handler, _strip_line_ending(line))
            stdout.write(response + "\n")
            stdout.flush()