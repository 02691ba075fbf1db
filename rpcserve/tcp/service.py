"""Calls the RPC handler for one TCP session."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Hashable

log = logging.getLogger(__name__)


class Service:
    """Handles requests from one peer with that peer's metadata.

    ``handler`` is an object with a ``handle_request(request, meta)`` method,
    or such a callable; it returns the response text (or an awaitable of it),
    or None when the request produces no response.
    """

    def __init__(self, peer_addr: Hashable, handler: Any, meta: Any) -> None:
        self.peer_addr = peer_addr
        self.handler = handler
        self.meta = meta

    async def call(self, request: str) -> str | None:
        """Handle ``request`` and return the response, if any."""
        log.debug("Accepted request from peer %s: %s", self.peer_addr, request)
        handle = getattr(self.handler, "handle_request", self.handler)
        result = handle(request, self.meta)
        if inspect.isawaitable(result):
            result = await result
        return result