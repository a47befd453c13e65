from __future__ import annotations

import logging

from querydiff.config import get_runtime_defaults
from querydiff.errors import DecodeError
from querydiff.table.model import ResultIterator
from querydiff.util.core import open_fixture

LOG = logging.getLogger(__name__)
_TRUNCATED_SUFFIX = "...<truncated>"


def decode_binary(value, line=None):
    if isinstance(value, (bytes, bytearray)):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("invalid UTF-8", line=line, cause=exc) from exc
    return value


def preview_for_error(text, max_chars=None):
    if max_chars is None:
        max_chars = get_runtime_defaults().decoder_defaults.error_preview_max_chars
    text = str(text)
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + _TRUNCATED_SUFFIX


def iter_text_lines(stream):
    for line, raw in enumerate(stream, 1):
        yield decode_binary(raw, line)


class Decoder(object):
    """
    Turns an encoded byte stream into a ResultIterator.

    Subclasses implement ``_iter_tables(stream)``, a generator of
    ``(result_name, table)`` pairs. ``decode`` reads ahead to the first
    table, so malformed headers raise from ``decode`` itself; in that case
    the stream is closed before the error propagates.
    """

    format_name = "abstract"

    def _iter_tables(self, stream):
        raise NotImplementedError

    def decode(self, source) -> ResultIterator:
        stream = open_fixture(source)
        results = ResultIterator(self._iter_tables(stream), resource=stream)
        try:
            results.prime()
        except BaseException:
            results.release()
            raise
        if LOG.isEnabledFor(logging.DEBUG):
            LOG.debug("decode format=%s source=%s", self.format_name, getattr(stream, "source", None))
        return results
