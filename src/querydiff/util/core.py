import os
import logging
from pathlib import Path
from time import perf_counter
from urllib.parse import urlparse

from querydiff.execute.transport import build_session, resolve_proxy_url
from querydiff.util.logging import log_structured_event

LOG = logging.getLogger(__name__)
HTTP_SCHEMES = ("http", "https")
_EOF_MARKERS = (b"", "")


def _is_http_source(source) -> bool:
    if isinstance(source, (os.PathLike, bytes)):
        return False
    return urlparse(str(source)).scheme in HTTP_SCHEMES


def _resolve_verify_tls(verify_tls):
    if verify_tls is None:
        return True
    if isinstance(verify_tls, (bool, str, os.PathLike)):
        return verify_tls
    raise TypeError("verify_tls must be a bool, str, pathlib.Path, or None")


class ManagedByteStream:
    """
    A binary stream that is closed exactly once
    ===========================================

    Wraps a fixture file, an execution spool or an HTTP response body. Reading
    to EOF releases the underlying resource, and further ``close()`` calls are
    no-ops, so a decoder and the driver can both release the same stream.
    """

    def __init__(self, stream, *, source: str, response=None):
        self._stream = stream
        self._response = response
        self._source = source
        self._closed = False
        self._bytes_read = 0
        self._opened_at = perf_counter()
        if hasattr(stream, "decode_content"):
            stream.decode_content = True

    def _consume(self, chunk, *, at_eof):
        if isinstance(chunk, (bytes, bytearray, str)):
            self._bytes_read += len(chunk)
        if at_eof or chunk in _EOF_MARKERS:
            self.close()
        return chunk

    def read(self, size=-1):
        if self._closed:
            return b""
        return self._consume(self._stream.read(size), at_eof=size is None or size < 0)

    def readline(self, size=-1):
        if self._closed:
            return b""
        return self._consume(self._stream.readline(size), at_eof=False)

    def close(self):
        if self._closed:
            return
        self._closed = True
        try:
            self._stream.close()
        finally:
            if self._response is not None:
                self._response.close()
        log_structured_event(
            LOG,
            logging.DEBUG,
            "fixture_closed",
            source=self._source,
            bytes_read=self._bytes_read,
            elapsed_ms=round((perf_counter() - self._opened_at) * 1000.0, 3),
        )

    @property
    def closed(self):
        return self._closed

    @property
    def source(self):
        return self._source

    @property
    def bytes_read(self):
        return self._bytes_read

    def __iter__(self):
        return self

    def __next__(self):
        line = self.readline()
        if line in _EOF_MARKERS:
            raise StopIteration
        return line

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def _open_http(url, *, session, timeout, verify_tls, proxy_url):
    # Proxy settings only apply when no session is supplied.
    if session is None:
        session = build_session(proxy_url=resolve_proxy_url(proxy_url), user_agent=None)
    response = session.get(url, stream=True, timeout=timeout, verify=_resolve_verify_tls(verify_tls))
    try:
        response.raise_for_status()
    except BaseException:
        response.close()
        raise
    return ManagedByteStream(response.raw, source=url, response=response)


def _open_path(path):
    path = Path(path)
    return ManagedByteStream(path.open("rb"), source=str(path))


def open_fixture(source, *, session=None, timeout=None, verify_tls=True, proxy_url=None):
    """Open a fixture path, URL or binary file object as a ManagedByteStream."""
    if isinstance(source, ManagedByteStream):
        return source
    if hasattr(source, "read"):
        return ManagedByteStream(source, source=str(getattr(source, "name", "<stream>")))
    if _is_http_source(source):
        return _open_http(str(source), session=session, timeout=timeout, verify_tls=verify_tls, proxy_url=proxy_url)
    return _open_path(source)


class ReadableException(Exception):
    """An error carrying a human message plus the exception or text behind it."""

    def __init__(self, message, cause=None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self):
        if self.cause is None:
            return str(self.message)
        if isinstance(self.cause, BaseException):
            return "%s (caused by %s: %s)" % (self.message, type(self.cause).__name__, self.cause)
        return "%s: %s" % (self.message, self.cause)
