"""Namespace for a WebSocket transport; it holds no modules."""

__all__: list[str] = []