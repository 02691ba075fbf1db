"""Pushing messages to connected TCP peers."""

from __future__ import annotations

from typing import Any, Hashable, MutableMapping, Protocol


class _MessageSender(Protocol):
    def send(self, message: str) -> None:
        """Queue ``message`` for delivery to the peer."""


SenderChannels = MutableMapping[Hashable, _MessageSender]


class PushMessageError(Exception):
    """A message could not be pushed to a peer."""


class NoSuchPeer(PushMessageError):
    """The peer is not connected."""

    def __init__(self, peer_addr: Any) -> None:
        super().__init__(f"no such peer: {peer_addr!r}")
        self.peer_addr = peer_addr


class Dispatcher:
    """Sends messages to peers, keyed by their socket address."""

    def __init__(self, channels: SenderChannels | None = None) -> None:
        self._channels: SenderChannels = {} if channels is None else channels

    def push_message(self, peer_addr: Hashable, message: str) -> None:
        """Push ``message`` to the peer at ``peer_addr``.

        Raises NoSuchPeer when the peer is not connected and
        PushMessageError when the message cannot be sent.
        """
        channel = self._channels.get(peer_addr)
        if channel is None:
            raise NoSuchPeer(peer_addr)
        try:
            channel.send(message)
        except (RuntimeError, OSError) as error:
            raise PushMessageError(f"failed to send to {peer_addr!r}: {error}") from error

    def is_connected(self, peer_addr: Hashable) -> bool:
        """True if the peer is still connected."""
        return peer_addr in self._channels

    def peer_count(self) -> int:
        """Number of connected peers."""
        return len(self._channels)