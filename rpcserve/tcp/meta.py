"""Per-session metadata for TCP connections."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Hashable


@dataclass(frozen=True)
class RequestContext:
    """What is known about a peer when its session starts."""

    peer_addr: Hashable
    sender: Any


class MetaExtractor(ABC):
    """Extracts session metadata from a request context.

    A plain callable taking the context works in its place.
    """

    @abstractmethod
    def extract(self, context: RequestContext) -> Any:
        """Return the metadata for the session described by ``context``."""


class NoopExtractor(MetaExtractor):
    """Ignores the context and returns default metadata.

    ``default`` is a factory called for each session; without one the
    metadata is None.
    """

    def __init__(self, default: Callable[[], Any] | None = None) -> None:
        self.default = default

    def extract(self, context: RequestContext) -> Any:
        return None if self.default is None else self.default()