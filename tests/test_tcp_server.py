import json
import socket
import threading
import time

import pytest

from rpcserve.reactor import RpcEventLoop
from rpcserve.tcp.dispatch import NoSuchPeer
from rpcserve.tcp.meta import MetaExtractor
from rpcserve.tcp.server import ServerBuilder

REQUEST = b'{"jsonrpc": "2.0", "method": "say_hello", "params": [42, 23], "id": 1}\n'
RESPONSE = '{"jsonrpc":"2.0","result":"hello","id":1}\n'


class HelloHandler:
    def result(self, meta):
        return "hello"

    def handle_request(self, request, meta):
        call = json.loads(request)
        if "id" not in call:
            return None
        return json.dumps(
            {"jsonrpc": "2.0", "result": self.result(meta), "id": call["id"]},
            separators=(",", ":"),
        )


class PeerHelloHandler(HelloHandler):
    def result(self, meta):
        return f"hello, {meta[0]}:{meta[1]}"


class PeerMetaExtractor(MetaExtractor):
    def extract(self, context):
        return context.peer_addr


class PeerListMetaExtractor(MetaExtractor):
    def __init__(self):
        self.peers = []
        self.lock = threading.Lock()

    def extract(self, context):
        with self.lock:
            self.peers.append(context.peer_addr)
        return context.peer_addr


def casual_server():
    return ServerBuilder(HelloHandler())


def dummy_request(addr, data):
    with socket.create_connection(addr, timeout=10) as conn:
        conn.sendall(data)
        conn.shutdown(socket.SHUT_WR)
        chunks = []
        while True:
            chunk = conn.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def dummy_request_str(addr, data):
    return dummy_request(addr, data).decode("utf-8")


def recv_exact(conn, size):
    data = b""
    while len(data) < size:
        chunk = conn.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_doc_test_start_and_close():
    server = casual_server().start("0.0.0.0:0")
    assert server.address[1] > 0
    server.close()
    finished = threading.Thread(target=server.wait)
    finished.start()
    finished.join(timeout=10)
    assert not finished.is_alive()


def test_doc_test_connect():
    with casual_server().start("127.0.0.1:0") as server:
        with socket.create_connection(server.address, timeout=10) as conn:
            assert conn.getpeername()[1] == server.address[1]


def test_disconnect():
    builder = casual_server()
    dispatcher = builder.dispatcher()
    with builder.start("127.0.0.1:0") as server:
        conn = socket.create_connection(server.address, timeout=10)
        assert conn.getpeername()[:2] == server.address
        conn.shutdown(socket.SHUT_RDWR)
        conn.close()
        assert wait_until(lambda: dispatcher.peer_count() == 0)
        assert dispatcher.peer_count() == 0


def test_doc_test_handle():
    with casual_server().start(("127.0.0.1", 0)) as server:
        result = dummy_request_str(server.address, REQUEST)
    assert result == RESPONSE


def test_req_parallel():
    builder = casual_server()
    dispatcher = builder.dispatcher()
    with builder.start("127.0.0.1:0") as server:
        results = []
        lock = threading.Lock()

        def worker():
            for _ in range(100):
                response = dummy_request_str(server.address, REQUEST)
                with lock:
                    results.append(response)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)
        assert wait_until(lambda: dispatcher.peer_count() == 0)
        assert dispatcher.peer_count() == 0
    assert len(results) == 600
    assert set(results) == {RESPONSE}


def test_peer_meta():
    builder = ServerBuilder(PeerHelloHandler()).session_meta_extractor(PeerMetaExtractor())
    with builder.start("127.0.0.1:0") as server:
        result = dummy_request_str(server.address, REQUEST)
    # contains a random port, so only the length is compared
    assert len(result) in (58, 59)
    assert result.startswith('{"jsonrpc":"2.0","result":"hello, 127.0.0.1:')


def test_callable_meta_extractor():
    builder = ServerBuilder(PeerHelloHandler(), lambda context: context.peer_addr)
    with builder.start("127.0.0.1:0") as server:
        result = dummy_request_str(server.address, REQUEST)
    assert result.startswith('{"jsonrpc":"2.0","result":"hello, 127.0.0.1:')


def test_message():
    extractor = PeerListMetaExtractor()
    builder = ServerBuilder(HelloHandler()).session_meta_extractor(extractor)
    dispatcher = builder.dispatcher()
    with builder.start("127.0.0.1:0") as server:
        with socket.create_connection(server.address, timeout=10) as conn:
            assert wait_until(lambda: dispatcher.peer_count() == 1)
            peer_addr = extractor.peers[0]
            assert dispatcher.is_connected(peer_addr)
            dispatcher.push_message(peer_addr, "ping")

            assert recv_exact(conn, len("ping") + 1) == b"ping\n"

            conn.sendall(REQUEST)
            conn.shutdown(socket.SHUT_WR)
            chunks = []
            while True:
                chunk = conn.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)
    assert b"".join(chunks).decode("utf-8") == RESPONSE


def test_push_to_disconnected_peer_fails():
    extractor = PeerListMetaExtractor()
    builder = ServerBuilder(HelloHandler(), extractor)
    dispatcher = builder.dispatcher()
    with builder.start("127.0.0.1:0") as server:
        dummy_request(server.address, REQUEST)
        assert wait_until(lambda: dispatcher.peer_count() == 0)
        with pytest.raises(NoSuchPeer):
            dispatcher.push_message(extractor.peers[0], "ping")


def test_notification_gives_empty_line():
    notification = b'{"jsonrpc": "2.0", "method": "say_hello"}\n'
    with casual_server().start("127.0.0.1:0") as server:
        result = dummy_request_str(server.address, notification + REQUEST)
    assert result == "\n" + RESPONSE


def test_start_on_used_port_raises():
    with casual_server().start("127.0.0.1:0") as server:
        with pytest.raises(OSError):
            casual_server().start(server.address)


def test_shared_loop_survives_close():
    loop = RpcEventLoop("shared")
    try:
        server = casual_server().event_loop_executor(loop).start("127.0.0.1:0")
        address = server.address
        assert dummy_request_str(address, REQUEST) == RESPONSE
        server.close()

        def refused():
            try:
                socket.create_connection(address, timeout=1).close()
            except ConnectionRefusedError:
                return True
            return False

        assert wait_until(refused)
        assert loop.is_running is True
    finally:
        loop.close()
        loop.wait()


def test_close_makes_wait_return():
    server = casual_server().start("127.0.0.1:0")
    waiter = threading.Thread(target=server.wait)
    waiter.start()
    time.sleep(0.2)
    assert waiter.is_alive()
    server.close()
    waiter.join(timeout=10)
    assert not waiter.is_alive()