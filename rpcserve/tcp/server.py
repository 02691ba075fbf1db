"""JSON-RPC server over TCP: one request per line, one response per line."""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any, Hashable

from rpcserve.reactor import Executor, RpcEventLoop, initialize
from rpcserve.suspendable import SuspendableStream
from rpcserve.tcp.dispatch import Dispatcher
from rpcserve.tcp.meta import MetaExtractor, NoopExtractor, RequestContext
from rpcserve.tcp.service import Service

log = logging.getLogger(__name__)

_END = object()
_SEPARATOR = "\n"


def _parse_addr(addr: str | tuple) -> tuple[str, int]:
    if isinstance(addr, tuple):
        return str(addr[0]), int(addr[1])
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"invalid socket address: {addr!r}")
    return host.strip("[]"), int(port)


def _format_peer(peer: Any) -> str:
    if isinstance(peer, tuple) and len(peer) >= 2:
        return f"{peer[0]}:{peer[1]}"
    return str(peer)


class _PeerChannel:
    """Thread-safe channel feeding messages into a peer's outgoing queue."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self.queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    def send(self, message: str) -> None:
        if self._closed:
            raise ConnectionError("peer is disconnected")
        self._loop.call_soon_threadsafe(self.queue.put_nowait, message)

    def close(self) -> None:
        self._closed = True


class _Listener:
    """Accepts connections on a bound socket and serves each peer."""

    def __init__(
        self,
        sock: socket.socket,
        handler: Any,
        meta_extractor: Any,
        channels: dict,
    ) -> None:
        self._sock = sock
        self._handler = handler
        self._extract = getattr(meta_extractor, "extract", meta_extractor)
        self._channels = channels
        self._task: asyncio.Task | None = None
        self._peers: set[asyncio.Task] = set()
        self.address = sock.getsockname()[:2]

    async def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._accept_loop())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
        else:
            self._sock.close()

    async def _accept_loop(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            async for conn, peer in SuspendableStream(lambda: loop.sock_accept(self._sock)):
                log.debug("Accepted incoming connection from %s", _format_peer(peer))
                task = loop.create_task(self._serve_peer(conn, peer))
                self._peers.add(task)
                task.add_done_callback(self._peers.discard)
        except asyncio.CancelledError:
            pass
        except Exception as error:
            log.error("Error while executing the server: %r", error)
        finally:
            self._sock.close()

    async def _serve_peer(self, conn: socket.socket, peer: Hashable) -> None:
        loop = asyncio.get_running_loop()
        reader, writer = await asyncio.open_connection(sock=conn)
        channel = _PeerChannel(loop)
        meta = self._extract(RequestContext(peer, channel))
        service = Service(peer, self._handler, meta)
        self._channels[peer] = channel

        reading = loop.create_task(self._read_requests(reader, service, channel.queue))
        try:
            await self._write_messages(writer, channel.queue)
        except (ConnectionError, OSError) as error:
            log.debug("Peer %s: write failed: %r", _format_peer(peer), error)
        finally:
            reading.cancel()
            channel.close()
            self._channels.pop(peer, None)
            log.debug("Peer %s: service finished", _format_peer(peer))
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass

    @staticmethod
    async def _read_requests(
        reader: asyncio.StreamReader, service: Service, queue: asyncio.Queue
    ) -> None:
        try:
            while True:
                try:
                    raw = await reader.readline()
                except (ConnectionError, OSError, ValueError) as error:
                    log.debug("Read failed: %r", error)
                    break
                if not raw:
                    break
                try:
                    request = raw.decode("utf-8").rstrip("\r\n")
                except UnicodeDecodeError as error:
                    log.warning("Invalid request encoding: %s", error)
                    break
                if not request.strip():
                    continue
                try:
                    response = await service.call(request)
                except Exception as error:
                    log.warning("Error while processing request: %r", error)
                    response = ""
                if response is None:
                    log.debug("JSON RPC request produced no response")
                    response = ""
                else:
                    log.debug("Sent response: %s", response)
                queue.put_nowait(response)
        finally:
            queue.put_nowait(_END)

    @staticmethod
    async def _write_messages(writer: asyncio.StreamWriter, queue: asyncio.Queue) -> None:
        while True:
            item = await queue.get()
            if item is _END:
                # Deliver what has already been pushed, then finish.
                while not queue.empty():
                    pending = queue.get_nowait()
                    if pending is not _END:
                        writer.write((pending + _SEPARATOR).encode("utf-8"))
                await writer.drain()
                return
            writer.write((item + _SEPARATOR).encode("utf-8"))
            await writer.drain()


class Server:
    """A running TCP server."""

    def __init__(self, executor: Executor, listener: _Listener) -> None:
        self._executor = executor
        self._listener = listener
        self._closed = False

    @property
    def address(self) -> tuple[str, int]:
        """The address the server is bound to."""
        return self._listener.address

    def close(self) -> None:
        """Stop accepting connections and close the event loop if the server owns it."""
        if self._closed:
            return
        self._closed = True
        try:
            self._executor.loop.call_soon_threadsafe(self._listener.stop)
        except RuntimeError:
            log.warning("Event loop is already finished.")
        self._executor.close()

    def wait(self) -> None:
        """Block until the server's own event loop has finished."""
        self._executor.wait()

    def __enter__(self) -> Server:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ServerBuilder:
    """Configures and starts a TCP server."""

    def __init__(self, handler: Any, meta_extractor: Any = None) -> None:
        self.handler = handler
        self._meta_extractor: MetaExtractor | Any = (
            NoopExtractor() if meta_extractor is None else meta_extractor
        )
        self._shared: asyncio.AbstractEventLoop | RpcEventLoop | None = None
        self._channels: dict = {}

    def event_loop_executor(
        self, executor: asyncio.AbstractEventLoop | RpcEventLoop
    ) -> ServerBuilder:
        """Run on an existing event loop instead of spawning one."""
        self._shared = executor
        return self

    def session_meta_extractor(self, meta_extractor: Any) -> ServerBuilder:
        """Set the session metadata extractor."""
        self._meta_extractor = meta_extractor
        return self

    def start(self, addr: str | tuple) -> Server:
        """Bind to ``addr`` and start serving; raises OSError if binding fails."""
        host, port = _parse_addr(addr)
        executor = initialize(self._shared)
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        try:
            sock = socket.create_server((host, port), family=family)
        except OSError:
            executor.close()
            raise
        sock.setblocking(False)
        listener = _Listener(sock, self.handler, self._meta_extractor, self._channels)
        try:
            executor.spawn(listener.start()).result()
        except Exception:
            sock.close()
            executor.close()
            raise
        return Server(executor, listener)

    def dispatcher(self) -> Dispatcher:
        """A dispatcher for pushing messages to this server's peers."""
        return Dispatcher(self._channels)