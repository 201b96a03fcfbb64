from __future__ import annotations

import os
import posixpath
import sys
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, List, Optional, TextIO
from urllib.parse import urlparse

from .archive import ExtractSummary, ProgressFactory
from .config import Options
from .header import ContainerHeader
from .pipe import PipeReader, PipeWriter, make_pipe, run_producer
from .pipeline import EncodeResult, RawSource, decode, encode
from .walk import collect_entries


@dataclass
class TransferResult:
    name: str
    location: str  # resource URL for uploads, output path for downloads
    header: ContainerHeader
    checksum: Optional[str] = None
    size: int = 0
    summary: Optional[ExtractSummary] = None  # archives only, downloads only


def _chunks(reader: PipeReader, chunk_size: int) -> Iterator[bytes]:
    while True:
        data = reader.read(chunk_size)
        if not data:
            return
        yield data


def _upload(
    transport,
    options: Options,
    name: str,
    producer: Callable[[PipeWriter], EncodeResult],
) -> TransferResult:
    """Encode on a worker thread while ``transport`` streams the pipe out."""
    reader, writer = make_pipe(options.pipe_depth)
    future = run_producer(producer, writer)
    try:
        location = transport.upload(
            name,
            _chunks(reader, options.chunk_size),
            max_days=options.max_days,
            max_downloads=options.max_downloads,
        )
    except BaseException as exc:
        reader.close()
        producer_exc = future.exception()
        # a producer that died of BrokenPipeError only saw the upload go away
        if producer_exc is not None and producer_exc is not exc and not isinstance(producer_exc, BrokenPipeError):
            raise producer_exc from exc
        raise
    finally:
        reader.close()
    encoded = future.result()
    return TransferResult(
        name=name,
        location=location,
        header=encoded.header,
        checksum=encoded.checksum,
        size=encoded.bytes_in,
    )


def put(
    options: Options,
    files: List[str],
    transport,
    password: Optional[bytes] = None,
    output: Optional[TextIO] = None,
    *,
    progress: Optional[ProgressFactory] = None,
    stdin: Optional[BinaryIO] = None,
) -> List[TransferResult]:
    """Upload ``files`` and print each resulting URL to ``output``.

    ``["-"]`` uploads standard input. With ``options.archive`` all inputs go
    into one tar container named ``options.archive_name``; otherwise every file
    becomes its own container, uploaded one after another. The first failure
    aborts the run.
    """
    if not files:
        raise ValueError("no files to upload")
    results: List[TransferResult] = []

    def _emit(result: TransferResult) -> None:
        results.append(result)
        if output is not None:
            print(result.location, file=output)

    if files == ["-"]:
        if options.archive:
            raise ValueError("tar makes no sense when reading from stdin")
        stream = stdin if stdin is not None else sys.stdin.buffer
        src = RawSource(stream=stream, name="stdin")
        _emit(_upload(transport, options, "stdin", lambda sink: encode(sink, options, password, source=src)))
        return results

    if options.archive:
        entries = collect_entries(files)
        _emit(
            _upload(
                transport,
                options,
                options.archive_name,
                lambda sink: encode(sink, options, password, entries=entries, progress=progress),
            )
        )
        return results

    for path in files:
        if os.path.isdir(path):
            raise ValueError(f"{path} is a directory; use --tar to upload directories")
    for path in files:
        name = os.path.basename(path)
        size = os.path.getsize(path)
        with open(path, "rb") as fh:
            src = RawSource(stream=fh, name=name, size=size)
            _emit(
                _upload(
                    transport,
                    options,
                    name,
                    lambda sink: encode(sink, options, password, source=src, progress=progress),
                )
            )
    return results


def _name_from_url(url: str) -> str:
    return posixpath.basename(urlparse(url).path.rstrip("/")) or "download"


def get(
    options: Options,
    urls: List[str],
    transport,
    password: Optional[bytes] = None,
    *,
    progress: Optional[ProgressFactory] = None,
    stdout: Optional[BinaryIO] = None,
    ask_password: Optional[Callable[[], bytes]] = None,
    on_result: Optional[Callable[[TransferResult], None]] = None,
) -> List[TransferResult]:
    """Download and decode each URL in turn.

    Archives are extracted under ``options.dest``; raw payloads are written to
    ``options.dest/<basename of the URL>`` or, with ``options.stdout``, to
    standard output. ``on_result`` sees each result as soon as its download
    is done, before a later URL can fail.
    """
    results: List[TransferResult] = []
    asked: List[bytes] = []

    def _ask() -> bytes:
        # one prompt serves every container in the run
        if not asked:
            asked.append(ask_password())
        return asked[0]

    sink = None
    if options.stdout:
        sink = stdout if stdout is not None else sys.stdout.buffer
    for url in urls:
        name = _name_from_url(url)
        download = transport.download(url)
        with download.stream as stream:
            decoded = decode(
                stream,
                options,
                password,
                dest=options.dest,
                name=name,
                stdout=sink,
                progress=progress,
                total=download.length,
                ask_password=_ask if ask_password is not None else None,
            )
        result = TransferResult(
            name=name,
            location=decoded.output or "",
            header=decoded.header,
            checksum=decoded.checksum,
            size=decoded.bytes_out,
            summary=decoded.summary,
        )
        results.append(result)
        if on_result is not None:
            on_result(result)
    return results
