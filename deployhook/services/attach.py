"""Decoder for the controller's job attach stream.

An attached job streams a sequence of frames. All integers are big-endian:

- ``SUCCESS`` / ``WAITING``: the type byte only
- ``ERROR``: type, uint32 length, UTF-8 message
- ``DATA``: type, stream id (1 stdout, 2 stderr), uint32 length, payload
- ``EXIT``: type, uint32 exit status

``receive`` copies data frames to the given binary writers until the exit
frame arrives and returns the exit status. Writes run in a worker thread so
a slow stdout pipe does not stall the event loop.
"""

from __future__ import annotations

import asyncio
import struct
from collections.abc import AsyncIterator
from typing import BinaryIO

FRAME_SUCCESS = 0
FRAME_WAITING = 1
FRAME_ERROR = 2
FRAME_DATA = 3
FRAME_EXIT = 5

STREAM_STDOUT = 1
STREAM_STDERR = 2

_UINT32 = struct.Struct(">I")


class AttachError(Exception):
    """Raised when the attach stream reports an error or ends unexpectedly."""


def _write(out: BinaryIO, payload: bytes) -> None:
    out.write(payload)
    out.flush()


class _FrameReader:
    """Reassembles exact-length reads from an iterator of byte chunks."""

    def __init__(self, chunks: AsyncIterator[bytes]) -> None:
        self._chunks = chunks
        self._buffer = bytearray()

    async def read_exactly(self, n: int) -> bytes:
        while len(self._buffer) < n:
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                raise AttachError("unexpected end of attach stream") from None
            self._buffer.extend(chunk)
        data = bytes(self._buffer[:n])
        del self._buffer[:n]
        return data

    async def read_uint32(self) -> int:
        return _UINT32.unpack(await self.read_exactly(4))[0]


async def receive(
    stream: AsyncIterator[bytes],
    stdout: BinaryIO,
    stderr: BinaryIO,
) -> int:
    """Copy job output to *stdout*/*stderr* and return the job's exit status.

    Raises:
        AttachError: On an error frame, an unknown frame type, or if the
            stream closes before an exit frame.
    """
    reader = _FrameReader(stream.__aiter__())
    while True:
        frame_type = (await reader.read_exactly(1))[0]

        if frame_type in (FRAME_SUCCESS, FRAME_WAITING):
            continue

        if frame_type == FRAME_DATA:
            stream_id = (await reader.read_exactly(1))[0]
            length = await reader.read_uint32()
            payload = await reader.read_exactly(length)
            out = stderr if stream_id == STREAM_STDERR else stdout
            await asyncio.to_thread(_write, out, payload)
            continue

        if frame_type == FRAME_EXIT:
            return await reader.read_uint32()

        if frame_type == FRAME_ERROR:
            length = await reader.read_uint32()
            message = (await reader.read_exactly(length)).decode("utf-8", errors="replace")
            raise AttachError(message)

        raise AttachError(f"unknown attach frame type {frame_type}")


def data_frame(payload: bytes, stream_id: int = STREAM_STDOUT) -> bytes:
    """Encode a data frame."""
    return bytes([FRAME_DATA, stream_id]) + _UINT32.pack(len(payload)) + payload


def exit_frame(status: int) -> bytes:
    """Encode an exit frame."""
    return bytes([FRAME_EXIT]) + _UINT32.pack(status)


def error_frame(message: str) -> bytes:
    """Encode an error frame."""
    encoded = message.encode("utf-8")
    return bytes([FRAME_ERROR]) + _UINT32.pack(len(encoded)) + encoded
