from __future__ import annotations

import gzip
import hashlib
import io
import os
import threading
import unittest

from ferry.codec import CompressWriter, DecompressReader
from ferry.errors import FormatError
from ferry.pipe import make_pipe, run_producer
from ferry.progressbar import ProgressBar
from ferry.streams import Borrowed, ChecksumStream, ProgressReporter, ProgressStream


class _Recorder(ProgressReporter):
    def __init__(self):
        self.values = []
        self.finished = 0

    def report(self, current, total):
        self.values.append((current, total))

    def finish(self):
        self.finished += 1


def _gzip(data: bytes, level: int = 6) -> bytes:
    buf = io.BytesIO()
    with CompressWriter(Borrowed(buf), level=level) as w:
        w.write(data)
    return buf.getvalue()


class ChecksumStreamTests(unittest.TestCase):
    def test_write_side_digest(self):
        seen = []
        buf = io.BytesIO()
        cs = ChecksumStream(Borrowed(buf), on_digest=seen.append)
        cs.write(b"hello ")
        cs.write(b"world")
        cs.close()
        expected = hashlib.sha256(b"hello world").hexdigest()
        self.assertEqual(cs.digest_value, expected)
        self.assertEqual(seen, [expected])
        self.assertEqual(buf.getvalue(), b"hello world")
        self.assertEqual(cs.byte_count, 11)

    def test_read_side_drain_covers_everything(self):
        data = os.urandom(300_000)
        cs = ChecksumStream(io.BytesIO(data))
        cs.read(10)
        cs.drain(4096)
        cs.close()
        self.assertEqual(cs.digest_value, hashlib.sha256(data).hexdigest())

    def test_abort_skips_digest_callback(self):
        seen = []
        cs = ChecksumStream(io.BytesIO(), on_digest=seen.append)
        cs.write(b"x")
        cs.abort()
        self.assertEqual(seen, [])
        self.assertIsNone(cs.digest_value)


class BorrowedTests(unittest.TestCase):
    def test_close_leaves_inner_open(self):
        buf = io.BytesIO()
        with Borrowed(buf) as b:
            b.write(b"abc")
        self.assertFalse(buf.closed)
        self.assertEqual(buf.getvalue(), b"abc")


class ProgressStreamTests(unittest.TestCase):
    def test_monotonic_and_reaches_total(self):
        rec = _Recorder()
        data = os.urandom(10_000)
        with ProgressStream(io.BytesIO(data), len(data), rec) as ps:
            while ps.read(777):
                pass
        currents = [c for c, _ in rec.values]
        self.assertEqual(currents, sorted(currents))
        self.assertEqual(currents[-1], len(data))
        self.assertTrue(all(t == len(data) for _, t in rec.values))
        self.assertEqual(rec.finished, 1)

    def test_clamped_when_more_bytes_than_declared(self):
        rec = _Recorder()
        with ProgressStream(io.BytesIO(b"x" * 100), 40, rec) as ps:
            ps.read()
        self.assertEqual(max(c for c, _ in rec.values), 40)

    def test_short_source_reaches_total_at_eof(self):
        rec = _Recorder()
        with ProgressStream(io.BytesIO(b"x" * 10), 40, rec) as ps:
            self.assertEqual(ps.read(), b"x" * 10)
        self.assertEqual(rec.values, [(10, 40), (40, 40)])
        self.assertEqual(rec.finished, 1)

    def test_abort_does_not_claim_completion(self):
        rec = _Recorder()
        ps = ProgressStream(io.BytesIO(b"x" * 10), 40, rec)
        ps.read(5)
        ps.abort()
        self.assertEqual(rec.values, [(5, 40)])

    def test_clean_close_reaches_total(self):
        rec = _Recorder()
        with ProgressStream(io.BytesIO(b"x" * 10), 40, rec) as ps:
            ps.read(4)
        self.assertEqual(rec.values, [(4, 40), (40, 40)])

    def test_error_inside_with_does_not_claim_completion(self):
        rec = _Recorder()
        with self.assertRaises(RuntimeError):
            with ProgressStream(io.BytesIO(b"x" * 10), 40, rec) as ps:
                ps.read(4)
                raise RuntimeError("stop")
        self.assertEqual(rec.values, [(4, 40)])
        self.assertEqual(rec.finished, 1)

    def test_finish_on_abort(self):
        rec = _Recorder()
        ps = ProgressStream(io.BytesIO(b"abc"), 3, rec)
        ps.abort()
        self.assertEqual(rec.finished, 1)


class CompressStreamTests(unittest.TestCase):
    def test_output_is_standard_gzip(self):
        data = b"abc" * 10_000
        blob = _gzip(data)
        self.assertEqual(blob[:2], b"\x1f\x8b")
        self.assertEqual(gzip.decompress(blob), data)

    def test_round_trip_in_small_reads(self):
        data = os.urandom(50_000) + b"\x00" * 500_000
        blob = _gzip(data)
        out = bytearray()
        with DecompressReader(io.BytesIO(blob), chunk_size=1024) as r:
            while True:
                chunk = r.read(333)
                if not chunk:
                    break
                self.assertLessEqual(len(chunk), 333)
                out += chunk
        self.assertEqual(bytes(out), data)

    def test_reads_python_gzip(self):
        data = b"interop" * 100
        with DecompressReader(io.BytesIO(gzip.compress(data))) as r:
            self.assertEqual(r.read(), data)

    def test_truncated_stream(self):
        blob = _gzip(os.urandom(5000))
        with self.assertRaises(FormatError):
            with DecompressReader(io.BytesIO(blob[:-10])) as r:
                r.read()

    def test_corrupt_stream(self):
        with self.assertRaises(FormatError):
            with DecompressReader(io.BytesIO(b"definitely not gzip data")) as r:
                r.read()

    def test_trailing_garbage(self):
        blob = _gzip(b"data") + b"junk"
        with self.assertRaises(FormatError):
            with DecompressReader(io.BytesIO(blob)) as r:
                r.read()

    def test_bad_level(self):
        with self.assertRaises(ValueError):
            CompressWriter(io.BytesIO(), level=12)


class PipeTests(unittest.TestCase):
    def test_bytes_cross_in_order(self):
        reader, writer = make_pipe(depth=2)
        chunks = [os.urandom(1000) for _ in range(50)]

        def produce(w):
            for c in chunks:
                w.write(c)
            return len(chunks)

        fut = run_producer(produce, writer)
        got = bytearray()
        while True:
            data = reader.read(4096)
            if not data:
                break
            got += data
        reader.close()
        self.assertEqual(bytes(got), b"".join(chunks))
        self.assertEqual(fut.result(timeout=5), 50)

    def test_producer_error_reaches_reader(self):
        reader, writer = make_pipe(depth=2)

        def produce(w):
            w.write(b"partial")
            raise FormatError("boom")

        fut = run_producer(produce, writer)
        self.assertEqual(reader.read(100), b"partial")
        with self.assertRaises(FormatError):
            reader.read(100)
        reader.close()
        self.assertIsInstance(fut.exception(timeout=5), FormatError)

    def test_closing_reader_unblocks_writer(self):
        reader, writer = make_pipe(depth=1)
        started = threading.Event()

        def produce(w):
            started.set()
            while True:
                w.write(b"x" * 100)

        fut = run_producer(produce, writer)
        started.wait(5)
        reader.read(10)
        reader.close()
        self.assertIsInstance(fut.exception(timeout=5), BrokenPipeError)


class ProgressBarTests(unittest.TestCase):
    def test_silent_when_not_a_tty(self):
        out = io.StringIO()
        bar = ProgressBar("file", output=out)
        bar.report(5, 10)
        bar.finish()
        self.assertEqual(out.getvalue(), "")

    def test_draws_on_tty(self):
        class _Tty(io.StringIO):
            def isatty(self):
                return True

        out = _Tty()
        bar = ProgressBar("file", output=out)
        bar.report(5, 10)
        bar.report(10, 10)
        bar.finish()
        text = out.getvalue()
        self.assertTrue(text.startswith("\rfile ["))
        self.assertIn("10/10", text)
        self.assertTrue(text.endswith("\n"))


if __name__ == "__main__":
    unittest.main()
