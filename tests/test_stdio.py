import io
import json

import pytest

from rpcserve.stdio import ServerBuilder, process

REQUEST = '{"jsonrpc": "2.0", "method": "say_hello", "params": [42, 23], "id": 1}'
RESPONSE = '{"jsonrpc":"2.0","result":"hello","id":1}'
NOTIFICATION = '{"jsonrpc": "2.0", "method": "say_hello", "params": []}'


class HelloHandler:
    def __init__(self):
        self.seen = []

    def handle_request(self, request):
        self.seen.append(request)
        message = json.loads(request)
        if "id" not in message:
            return None
        return json.dumps(
            {"jsonrpc": "2.0", "result": "hello", "id": message["id"]},
            separators=(",", ":"),
        )


class AsyncHelloHandler(HelloHandler):
    async def handle_request(self, request):
        return super().handle_request(request)


@pytest.mark.asyncio
async def test_process_returns_response():
    assert await process(HelloHandler(), REQUEST) == RESPONSE


@pytest.mark.asyncio
async def test_process_returns_empty_for_no_response():
    assert await process(HelloHandler(), NOTIFICATION) == ""


@pytest.mark.asyncio
async def test_process_supports_async_handler_and_callables():
    assert await process(AsyncHelloHandler(), REQUEST) == RESPONSE
    assert await process(lambda line: line.upper(), "abc") == "ABC"


def test_build_writes_one_response_per_line():
    handler = HelloHandler()
    stdin = io.StringIO(REQUEST + "\n" + NOTIFICATION + "\n")
    stdout = io.StringIO()
    ServerBuilder(handler).build(stdin, stdout)
    assert stdout.getvalue() == RESPONSE + "\n" + "\n"
    assert handler.seen == [REQUEST, NOTIFICATION]


def test_build_strips_carriage_return_and_reads_last_line():
    handler = HelloHandler()
    stdin = io.StringIO(REQUEST + "\r\n" + REQUEST)
    stdout = io.StringIO()
    ServerBuilder(handler).build(stdin, stdout)
    assert handler.seen == [REQUEST, REQUEST]
    assert stdout.getvalue().splitlines() == [RESPONSE, RESPONSE]


def test_build_with_empty_input_writes_nothing():
    stdout = io.StringIO()
    ServerBuilder(HelloHandler()).build(io.StringIO(""), stdout)
    assert stdout.getvalue() == ""