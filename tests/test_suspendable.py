import pytest

from rpcserve.suspendable import SuspendableStream, is_connection_error


def _source(outcomes, seen_delays=None, stream_ref=None):
    remaining = list(outcomes)

    async def accept():
        if seen_delays is not None and stream_ref:
            seen_delays.append(stream_ref[0].next_delay)
        if not remaining:
            raise StopAsyncIteration
        outcome = remaining.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    return accept


async def _generate():
    yield 1
    yield 2


@pytest.mark.parametrize(
    "error, expected",
    [
        (ConnectionRefusedError(), True),
        (ConnectionAbortedError(), True),
        (ConnectionResetError(), True),
        (OSError("too many open files"), False),
        (ValueError("x"), False),
    ],
)
def test_is_connection_error(error, expected):
    assert is_connection_error(error) is expected


@pytest.mark.asyncio
async def test_yields_items_in_order():
    stream = SuspendableStream(_source(["a", "b", "c"]))
    assert [item async for item in stream] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_accepts_async_iterator():
    stream = SuspendableStream(_generate())
    assert [item async for item in stream] == [1, 2]


@pytest.mark.asyncio
async def test_connection_errors_are_skipped_without_delay_change():
    stream = SuspendableStream(_source([ConnectionResetError(), "a", ConnectionRefusedError(), "b"]))
    start_delay = stream.next_delay
    first = await stream.__anext__()
    assert first == "a"
    assert stream.next_delay == stream.initial_delay
    assert await stream.__anext__() == "b"
    assert start_delay > stream.initial_delay


@pytest.mark.asyncio
async def test_other_errors_double_delay_then_reset():
    seen = []
    holder = []
    stream = SuspendableStream(_source([OSError("too many open files"), "conn"], seen, holder))
    holder.append(stream)
    assert await stream.__anext__() == "conn"
    assert seen == [0.02, 0.04]
    assert stream.next_delay == stream.initial_delay


@pytest.mark.asyncio
async def test_delay_is_capped_at_max():
    stream = SuspendableStream(_source([OSError("busy"), "conn"]))
    stream.max_delay = 0.01
    stream.next_delay = 0.01
    stream.initial_delay = 0.005
    seen = []

    original = stream._accept

    async def observing():
        seen.append(stream.next_delay)
        return await original()

    stream._accept = observing
    assert await stream.__anext__() == "conn"
    assert seen == [0.01, 0.01]


@pytest.mark.asyncio
async def test_non_os_errors_propagate():
    stream = SuspendableStream(_source([ValueError("broken")]))
    with pytest.raises(ValueError, match="broken"):
        await stream.__anext__()


@pytest.mark.asyncio
async def test_end_of_stream_raises_stop():
    stream = SuspendableStream(_source([]))
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()