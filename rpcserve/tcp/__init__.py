"""JSON-RPC server over TCP with per-peer message dispatch."""

__all__ = ["dispatch", "meta", "server", "service"]