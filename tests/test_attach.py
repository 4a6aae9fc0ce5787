"""Tests for the attach stream frame decoder."""

import io
import threading
from collections.abc import AsyncIterator

import pytest

from deployhook.services.attach import (
    FRAME_SUCCESS,
    FRAME_WAITING,
    STREAM_STDERR,
    AttachError,
    data_frame,
    error_frame,
    exit_frame,
    receive,
)


async def _chunks(*chunks: bytes) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


async def _receive(*chunks: bytes) -> tuple[int, bytes, bytes]:
    stdout, stderr = io.BytesIO(), io.BytesIO()
    code = await receive(_chunks(*chunks), stdout, stderr)
    return code, stdout.getvalue(), stderr.getvalue()


@pytest.mark.asyncio
async def test_routes_output_by_stream_and_returns_exit_code() -> None:
    """Data frames are split between stdout and stderr; the exit code is returned."""
    code, out, err = await _receive(
        bytes([FRAME_SUCCESS]),
        data_frame(b"-----> Building widget\n"),
        data_frame(b"warning: cache miss\n", STREAM_STDERR),
        data_frame(b"-----> Done\n"),
        exit_frame(0),
    )

    assert code == 0
    assert out == b"-----> Building widget\n-----> Done\n"
    assert err == b"warning: cache miss\n"


@pytest.mark.asyncio
async def test_frames_split_across_chunks() -> None:
    """Frames are reassembled regardless of how the transport chunks them."""
    raw = bytes([FRAME_WAITING, FRAME_SUCCESS]) + data_frame(b"hello world") + exit_frame(3)
    pieces = [raw[i : i + 1] for i in range(len(raw))]

    code, out, _ = await _receive(*pieces)

    assert code == 3
    assert out == b"hello world"


@pytest.mark.asyncio
async def test_multiple_frames_in_one_chunk() -> None:
    """Several frames delivered in one chunk are all decoded."""
    raw = data_frame(b"a") + data_frame(b"b") + data_frame(b"") + exit_frame(0)

    code, out, _ = await _receive(raw)

    assert code == 0
    assert out == b"ab"


@pytest.mark.asyncio
async def test_large_exit_code() -> None:
    """Exit statuses use the full unsigned 32-bit range."""
    code, _, _ = await _receive(exit_frame(70000))

    assert code == 70000


@pytest.mark.asyncio
async def test_error_frame_raises() -> None:
    """An error frame becomes an AttachError carrying the message."""
    with pytest.raises(AttachError, match="job failed to start"):
        await _receive(data_frame(b"partial"), error_frame("job failed to start"))


@pytest.mark.asyncio
async def test_stream_closed_before_exit() -> None:
    """A stream that ends without an exit frame is an error."""
    with pytest.raises(AttachError, match="unexpected end"):
        await _receive(data_frame(b"still running"))


@pytest.mark.asyncio
async def test_truncated_frame() -> None:
    """A stream that ends mid-frame is an error."""
    with pytest.raises(AttachError):
        await _receive(data_frame(b"0123456789")[:8])


@pytest.mark.asyncio
async def test_unknown_frame_type() -> None:
    """An unrecognized frame type is rejected."""
    with pytest.raises(AttachError, match="unknown attach frame type 9"):
        await _receive(bytes([9]))


@pytest.mark.asyncio
async def test_empty_stream() -> None:
    """An empty stream is an error."""
    with pytest.raises(AttachError):
        await _receive()


class _ThreadRecordingWriter(io.BytesIO):
    def __init__(self) -> None:
        super().__init__()
        self.write_threads: set[int] = set()

    def write(self, data) -> int:
        self.write_threads.add(threading.get_ident())
        return super().write(data)


@pytest.mark.asyncio
async def test_output_is_written_off_the_event_loop_thread() -> None:
    """Job output is written from a worker thread, never the loop thread."""
    stdout, stderr = _ThreadRecordingWriter(), _ThreadRecordingWriter()

    code = await receive(
        _chunks(data_frame(b"out\n"), data_frame(b"err\n", STREAM_STDERR), exit_frame(0)),
        stdout,
        stderr,
    )

    assert code == 0
    assert stdout.getvalue() == b"out\n"
    assert stderr.getvalue() == b"err\n"
    loop_thread = threading.get_ident()
    assert stdout.write_threads and loop_thread not in stdout.write_threads
    assert stderr.write_threads and loop_thread not in stderr.write_threads
