from __future__ import annotations

import hashlib
import io
from typing import BinaryIO, Callable, Optional

from .constants import DEFAULT_CHUNK_SIZE


class Layer(io.RawIOBase):
    """Stream decorator that owns exactly one inner stream.

    Reads and writes are forwarded to ``inner``. Subclasses hook in through
    ``_encode`` (bytes on their way down), ``_decode`` (bytes on their way up),
    ``_observe`` (every plaintext byte seen by this layer) and ``_finish``
    (flush own state before the inner stream is closed).

    ``close()`` finishes this layer and then closes the inner stream.
    ``abort()`` closes the whole chain below without flushing anything.
    """

    inner: Optional[BinaryIO] = None
    _aborted = False

    def __init__(self, inner: BinaryIO):
        super().__init__()
        self.inner = inner

    def readable(self) -> bool:
        return self.inner.readable()

    def writable(self) -> bool:
        return self.inner.writable()

    def readinto(self, b) -> int:
        data = self.inner.read(len(b)) or b""
        if not data:
            return 0
        data = self._decode(data)
        n = len(data)
        b[:n] = data
        self._observe(data)
        return n

    def write(self, b) -> int:
        data = bytes(b)
        if data:
            self.inner.write(self._encode(data))
            self._observe(data)
        return len(data)

    def abort(self) -> None:
        if self.closed:
            return
        self._aborted = True
        self.close()

    def close(self) -> None:
        if self.closed:
            return
        if self.inner is None:
            super().close()
            return
        try:
            if not self._aborted:
                self._finish()
        finally:
            try:
                if self._aborted and isinstance(self.inner, Layer):
                    self.inner.abort()
                else:
                    self.inner.close()
            finally:
                super().close()

    def _encode(self, data: bytes) -> bytes:
        return data

    def _decode(self, data: bytes) -> bytes:
        return data

    def _observe(self, data: bytes) -> None:
        pass

    def _finish(self) -> None:
        pass


class Borrowed(Layer):
    """Pass-through that flushes but never closes its inner stream (stdin/stdout)."""

    def close(self) -> None:
        if self.closed:
            return
        try:
            if not self._aborted:
                self.inner.flush()
        finally:
            io.RawIOBase.close(self)


class ChecksumStream(Layer):
    """Hash every byte that passes through, in either direction.

    On close the final hex digest is handed to ``on_digest`` exactly once.
    """

    def __init__(
        self,
        inner: BinaryIO,
        algorithm: str = "sha256",
        on_digest: Optional[Callable[[str], None]] = None,
    ):
        super().__init__(inner)
        self.algorithm = algorithm
        self._hash = hashlib.new(algorithm)
        self._on_digest = on_digest
        self.digest_value: Optional[str] = None
        self.byte_count = 0

    def _observe(self, data: bytes) -> None:
        self._hash.update(data)
        self.byte_count += len(data)

    def hexdigest(self) -> str:
        return self._hash.hexdigest()

    def drain(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
        """Read the inner stream to EOF so the digest covers all of it."""
        drained = 0
        while True:
            data = self.read(chunk_size)
            if not data:
                return drained
            drained += len(data)

    def _finish(self) -> None:
        self.digest_value = self.hexdigest()
        if self._on_digest is not None:
            self._on_digest(self.digest_value)


class ProgressReporter:
    """Sink for progress events. The base class ignores them."""

    def report(self, current: int, total: int) -> None:
        pass

    def finish(self) -> None:
        pass


class ProgressStream(Layer):
    """Count bytes against a known ``total`` and forward the count to a reporter.

    The reported value never decreases and never exceeds ``total``; it equals
    ``total`` once every declared byte has passed, a read hits EOF or the
    stream is closed cleanly, even if the source came up short. An abort
    leaves the count where it was. Close always signals ``finish()``, also
    when the chain is aborted.
    """

    def __init__(self, inner: BinaryIO, total: int, reporter: ProgressReporter):
        super().__init__(inner)
        self.total = max(0, int(total))
        self.reporter = reporter
        self.current = 0

    def _observe(self, data: bytes) -> None:
        current = min(self.total, self.current + len(data))
        if current > self.current:
            self.current = current
            self.reporter.report(self.current, self.total)

    def _complete(self) -> None:
        if self.current < self.total:
            self.current = self.total
            self.reporter.report(self.current, self.total)

    def readinto(self, b) -> int:
        n = super().readinto(b)
        if n == 0 and len(b):
            self._complete()
        return n

    def _finish(self) -> None:
        self._complete()

    def __exit__(self, exc_type, exc, tb):
        # an exception inside ``with`` must not count as completion
        if exc_type is not None:
            self.abort()
        else:
            self.close()

    def close(self) -> None:
        if self.closed:
            return
        try:
            super().close()
        finally:
            self.reporter.finish()
