from __future__ import annotations

import io
from dataclasses import dataclass
from typing import BinaryIO, Dict, Iterable, Optional
from urllib.parse import quote

import requests

from .constants import DEFAULT_CHUNK_SIZE, DEFAULT_TIMEOUT, USER_AGENT
from .errors import TransportError


@dataclass
class Download:
    stream: BinaryIO
    length: Optional[int] = None


class _ResponseStream(io.RawIOBase):
    """Readable view of a streaming response body; closing it releases the connection."""

    def __init__(self, response: requests.Response, chunk_size: int = DEFAULT_CHUNK_SIZE):
        super().__init__()
        self._response = response
        self._chunks = response.iter_content(chunk_size=chunk_size)
        self._buf = b""

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        while not self._buf:
            try:
                self._buf = next(self._chunks)
            except StopIteration:
                return 0
            except requests.RequestException as exc:
                raise TransportError(f"download interrupted: {exc}") from exc
        n = min(len(b), len(self._buf))
        b[:n] = self._buf[:n]
        self._buf = self._buf[n:]
        return n

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._response.close()
        finally:
            super().close()


def _check_status(response: requests.Response) -> None:
    if 200 <= response.status_code <= 299:
        return
    reason = response.reason or ""
    raise TransportError(
        f"Invalid http status {response.status_code} {reason}".rstrip(),
        status=response.status_code,
        reason=reason,
    )


class HttpTransport:
    """transfer.sh-style blob store: PUT <base>/<name> answers with the resource URL."""

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = USER_AGENT,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.user_agent = user_agent

    def _headers(self) -> Dict[str, str]:
        return {"User-Agent": self.user_agent}

    def upload(
        self,
        name: str,
        body: Iterable[bytes],
        *,
        max_days: int = 0,
        max_downloads: int = 0,
    ) -> str:
        """Stream ``body`` (chunked) to ``<base>/<name>``; returns the response body, stripped."""
        url = f"{self.base_url}/{quote(name)}"
        headers = self._headers()
        if max_days:
            headers["Max-Days"] = str(max_days)
        if max_downloads:
            headers["Max-Downloads"] = str(max_downloads)
        try:
            response = self.session.put(url, data=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"upload to {url} failed: {exc}") from exc
        with response:
            _check_status(response)
            return response.text.strip()

    def download(self, url: str) -> Download:
        try:
            response = self.session.get(url, headers=self._headers(), stream=True, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"download of {url} failed: {exc}") from exc
        try:
            _check_status(response)
        except TransportError:
            response.close()
            raise
        length: Optional[int] = None
        raw_length = response.headers.get("Content-Length")
        # with a content coding the header counts encoded bytes, not what we read
        if raw_length is not None and not response.headers.get("Content-Encoding"):
            try:
                length = int(raw_length)
            except ValueError:
                length = None
        return Download(stream=_ResponseStream(response), length=length)
