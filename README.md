# rpcserve

Line-framed transports for serving JSON-RPC requests, and the host and CORS
validation helpers such servers need. The package carries requests to a
handler you supply and carries its answers back; parsing the request and
calling methods is the handler's job.

## stdio

`rpcserve.stdio.ServerBuilder(handler).build()` reads one request per line
from standard input and writes one response per line to standard output
until end of input. `build` also accepts `stdin` and `stdout` text streams
to use instead.

The handler is an object with a `handle_request(line)` method, or a plain
callable, returning the response text (or an awaitable of it). When it
returns `None`, an empty line is written.

```python
from rpcserve.stdio import ServerBuilder

def handle(line):
    return '{"jsonrpc":"2.0","result":"hello","id":1}'

ServerBuilder(handle).build()
```

## TCP

`rpcserve.tcp.server.ServerBuilder` listens on a socket and serves each
connection on an asyncio event loop. Each incoming line is a request; each
response is written back followed by a newline.

```python
from rpcserve.tcp.server import ServerBuilder

def handle(request, meta):
    return '{"jsonrpc":"2.0","result":"hello","id":1}'

builder = ServerBuilder(handle)
dispatcher = builder.dispatcher()
server = builder.start("127.0.0.1:3030")   # or a (host, number) tuple
print(server.address)
...
server.close()
```

* The handler is an object with `handle_request(request, meta)`, or such a
  callable, returning the response text, an awaitable of it, or `None`.
* `session_meta_extractor(...)` sets what builds per-connection metadata: a
  `rpcserve.tcp.meta.MetaExtractor` subclass with `extract(context)`, or a
  callable taking a `RequestContext` (`peer_addr`, `sender`). The default
  `NoopExtractor` returns `None`, or the result of the factory it is given.
* `dispatcher()` returns a `Dispatcher` whose `push_message(peer_addr, text)`
  sends a line to a connected peer, raising `NoSuchPeer` for an unknown one;
  `is_connected` and `peer_count` report on the peers.
* `event_loop_executor(loop)` runs the server on an existing asyncio loop or
  `rpcserve.reactor.RpcEventLoop` instead of spawning a new loop thread.
* `Server.close()` stops accepting connections; `Server.wait()` blocks until
  the server's own loop thread has finished. `Server` is a context manager.

Accepting is wrapped in `rpcserve.suspendable.SuspendableStream`: refused,
aborted and reset connections are skipped, and other OS errors pause
accepting with a delay that doubles up to five seconds and resets after the
next success.

## Event loops

`rpcserve.reactor.initialize(shared=None, name="event.loop")` returns an
`Executor`: over the shared loop when one is given, otherwise over a new
`RpcEventLoop` running in its own thread. `spawn(coro)` schedules a
coroutine and returns a `concurrent.futures.Future`; `close()` and `wait()`
act only on a loop the executor owns. Closing an `RpcEventLoop` lets the
tasks already spawned finish first.

## Host validation

Allowed hosts are glob patterns (`*`, `?`, `[...]`, `{a,b}`), matched
case-insensitively; a pattern that is not a valid glob is compared for
equality instead.

```python
from rpcserve.hosts import is_host_valid, parse_host

allowed = [parse_host("*.example.com:*")]

is_host_valid("api.example.com:8180", allowed)   # True
is_host_valid("example.org", [])                 # False: not on the list
is_host_valid("anything", None)                  # True: validation disabled
```

`parse_host` drops any scheme and path and lower-cases the name.
`DomainsValidation.allow_only([...])` and `DomainsValidation.disabled()`
express the same choice as a value; `as_list()` gives the list or `None`.
`update(hosts, address)` adds a server address, and its `localhost` alias
for `127.0.0.1`, to a list of allowed hosts.

## CORS

```python
from rpcserve.cors import AccessControlAllowOrigin, get_cors_allow_origin

allowed = [
    AccessControlAllowOrigin.from_str("http://*.example.com"),
    AccessControlAllowOrigin.from_str("chrome-extension://*"),
]

result = get_cors_allow_origin("http://app.example.com", None, allowed)
str(result.value())  # "http://app.example.com"
```

The result is an `AllowCors`: `NOT_REQUIRED` (no origin, or the origin is
the server's own host), `INVALID` (origin not allowed), or ok with the header
value to return. `from_str` reads `*`, `all` and `any` as any origin and
`null` as the null origin. `get_cors_allow_headers` checks request headers
against an `AccessControlAllowHeaders` and filters the requested ones,
always permitting standard headers such as `Accept`, `Content-Type` and
`Origin`.

## What it does not do

There is no WebSocket transport and no session statistics hook, and the
package does not parse JSON-RPC itself or keep a method registry: every
transport needs a handler that turns request text into response text.