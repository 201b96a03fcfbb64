from __future__ import annotations

import concurrent.futures as _fut
import io
import queue
import threading
from typing import Callable, Optional, Tuple

from .constants import DEFAULT_PIPE_DEPTH


_POLL_SECONDS = 0.1


class _EOF:
    pass


class _Failure:
    def __init__(self, exc: BaseException):
        self.exc = exc


class _Channel:
    def __init__(self, depth: int):
        self.queue: "queue.Queue[object]" = queue.Queue(maxsize=max(1, depth))
        self.reader_closed = threading.Event()

    def put(self, item: object) -> None:
        # block while full, but give up once nobody will ever read again
        while True:
            if self.reader_closed.is_set():
                raise BrokenPipeError("pipe reader closed")
            try:
                self.queue.put(item, timeout=_POLL_SECONDS)
                return
            except queue.Full:
                continue


class PipeWriter(io.RawIOBase):
    """Producer end. ``close()`` signals EOF, ``fail(exc)`` forwards an error."""

    def __init__(self, channel: _Channel):
        super().__init__()
        self._channel = channel

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        if self.closed:
            raise ValueError("write to closed pipe")
        data = bytes(b)
        if data:
            self._channel.put(data)
        return len(data)

    def fail(self, exc: BaseException) -> None:
        if self.closed:
            return
        try:
            self._channel.put(_Failure(exc))
        except BrokenPipeError:
            pass
        finally:
            super().close()

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._channel.put(_EOF)
        except BrokenPipeError:
            pass
        finally:
            super().close()


class PipeReader(io.RawIOBase):
    """Consumer end. Raises whatever the producer passed to ``fail``."""

    def __init__(self, channel: _Channel):
        super().__init__()
        self._channel = channel
        self._buf = b""
        self._eof = False

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        while not self._buf:
            if self._eof:
                return 0
            item = self._channel.queue.get()
            if item is _EOF:
                self._eof = True
            elif isinstance(item, _Failure):
                self._eof = True
                raise item.exc
            else:
                self._buf = item  # type: ignore[assignment]
        n = min(len(b), len(self._buf))
        b[:n] = self._buf[:n]
        self._buf = self._buf[n:]
        return n

    def close(self) -> None:
        if self.closed:
            return
        self._channel.reader_closed.set()
        # unblock a producer waiting on a full queue
        try:
            while True:
                self._channel.queue.get_nowait()
        except queue.Empty:
            pass
        super().close()


def make_pipe(depth: int = DEFAULT_PIPE_DEPTH) -> Tuple[PipeReader, PipeWriter]:
    channel = _Channel(depth)
    return PipeReader(channel), PipeWriter(channel)


def run_producer(
    func: Callable[[PipeWriter], object],
    writer: PipeWriter,
    executor: Optional[_fut.Executor] = None,
) -> "_fut.Future[object]":
    """Run ``func(writer)`` on a worker thread.

    On success the writer is closed (EOF). On failure the exception is handed
    to the reader through the pipe and also kept on the returned future.
    """

    def _run() -> object:
        try:
            result = func(writer)
        except BaseException as exc:
            writer.fail(exc)
            raise
        writer.close()
        return result

    if executor is None:
        # one worker per transfer; the thread exits with the producer
        ex = _fut.ThreadPoolExecutor(max_workers=1, thread_name_prefix="ferry-producer")
        try:
            return ex.submit(_run)
        finally:
            ex.shutdown(wait=False)
    return executor.submit(_run)
