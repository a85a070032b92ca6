"""Single-owner send side of a relay websocket."""

import asyncio
from dataclasses import dataclass

import aiohttp

from comzy.exceptions import ConnectionLost
from comzy.logging import get_logger

logger = get_logger(__name__)


@dataclass
class _Frame:
    text: str | None  # None means a ping frame
    done: asyncio.Future[None]


class OutboundWriter:
    """
    Serializes every outbound frame of one connection.

    Replay tasks, registration and keepalive all hand frames to this writer
    instead of writing to the websocket, so frames never interleave. Each
    submitted frame comes with a future that resolves once it has been
    written, or fails with ConnectionLost.
    """

    def __init__(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        self._ws = ws
        self._queue: asyncio.Queue[_Frame | None] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="relay-writer")

    def submit(self, text: str) -> asyncio.Future[None]:
        """Queue a text frame."""
        return self._enqueue(text)

    def ping(self) -> asyncio.Future[None]:
        """Queue a ping frame."""
        return self._enqueue(None)

    def _enqueue(self, text: str | None) -> asyncio.Future[None]:
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        if self._closed:
            done.set_exception(ConnectionLost("connection closed"))
        else:
            self._queue.put_nowait(_Frame(text, done))
        return done

    async def _run(self) -> None:
        while True:
            frame = await self._queue.get()
            if frame is None:
                break
            try:
                if frame.text is None:
                    await self._ws.ping()
                else:
                    await self._ws.send_str(frame.text)
            except (aiohttp.ClientError, ConnectionError, RuntimeError) as exc:
                if not frame.done.done():
                    frame.done.set_exception(ConnectionLost(f"write failed: {exc}"))
            else:
                if not frame.done.done():
                    frame.done.set_result(None)

    async def close(self) -> None:
        """Stop accepting frames, flush what is queued, fail anything left."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
        if self._task is not None:
            await self._task

        while not self._queue.empty():
            frame = self._queue.get_nowait()
            if frame is not None and not frame.done.done():
                frame.done.set_exception(ConnectionLost("connection closed"))
