"""Line-framed JSON-RPC transports over stdio and TCP, with host and CORS helpers."""

__version__ = "0.1.0"

__all__ = [
    "cors",
    "hosts",
    "matcher",
    "reactor",
    "stdio",
    "suspendable",
    "tcp",
]