from __future__ import annotations

import logging
import tempfile

import requests

from querydiff.config import get_runtime_defaults
from querydiff.errors import ExecutionError, QueryDiffError
from querydiff.execute.transport import build_session, resolve_proxy_url
from querydiff.util.core import ManagedByteStream
from querydiff.util.logging import log_structured_event
from querydiff.util.timing import timed

LOG = logging.getLogger(__name__)
_ERROR_BODY_MAX_BYTES = 4096
_STREAM_CHUNK_BYTES = 64 * 1024
# Failures an execution service may raise while running a plan.
_EXECUTION_ERRORS = (OSError, ValueError, RuntimeError, LookupError, requests.RequestException)


def execute_to_buffer(executor, plan, *, spool_max_bytes: int | None = None) -> ManagedByteStream:
    """
    Run ``plan`` through ``executor.execute(plan, writer)`` and return the
    encoded output as a readable stream.

    Output is spooled: it stays in memory up to ``spool_max_bytes`` and moves
    to a temporary file beyond that. The returned stream owns the spool and
    deletes it when closed.
    """
    if spool_max_bytes is None:
        spool_max_bytes = get_runtime_defaults().harness_defaults.spool_max_bytes
    spool = tempfile.SpooledTemporaryFile(max_size=spool_max_bytes, mode="w+b")
    with timed() as timing:
        try:
            rows = executor.execute(plan, spool)
        except QueryDiffError:
            spool.close()
            raise
        except _EXECUTION_ERRORS as exc:
            spool.close()
            raise ExecutionError("failed to execute %s query" % plan.language, exc) from exc
        except BaseException:
            spool.close()
            raise
    size = spool.tell()
    spool.seek(0)
    log_structured_event(
        LOG,
        logging.DEBUG,
        "plan_executed",
        language=plan.language,
        dialect=plan.dialect.name,
        rows=rows,
        bytes=size,
        elapsed_ms=timing.milliseconds,
    )
    return ManagedByteStream(spool, source="execution:%s" % plan.language)


class HTTPExecutionService(object):
    """
    Executes plans against a remote query endpoint
    ==============================================

    The plan is posted as JSON; the response body is streamed into the writer
    chunk by chunk, so the output never has to fit in memory. The row count
    is not known to the client and ``execute`` returns ``None``.
    """

    def __init__(self, url, *, token=None, session=None, timeout=None, proxy_url=None):
        self.url = str(url)
        if timeout is None:
            timeout = get_runtime_defaults().harness_defaults.http_timeout_seconds
        self.timeout = timeout
        self.session = session or build_session(proxy_url=resolve_proxy_url(proxy_url), user_agent="querydiff", token=token)

    def _params(self, plan):
        if plan.mapping is None:
            return {}
        return {"orgID": plan.mapping.organization_id, "bucketID": plan.mapping.bucket_id}

    def execute(self, plan, writer):
        body = plan.describe()
        if plan.spec is not None:
            body["spec"] = plan.spec
        response = self.session.post(
            self.url,
            json=body,
            params=self._params(plan),
            headers={"Accept": plan.dialect.content_type},
            stream=True,
            timeout=self.timeout,
        )
        with response:
            if response.status_code >= 400:
                detail = response.raw.read(_ERROR_BODY_MAX_BYTES, decode_content=True) if response.raw else b""
                raise ExecutionError(
                    "query endpoint returned HTTP %d" % response.status_code,
                    detail.decode("utf-8", errors="replace"),
                )
            for chunk in response.iter_content(chunk_size=_STREAM_CHUNK_BYTES):
                if chunk:
                    writer.write(chunk)
        return None
