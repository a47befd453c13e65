import io

import pytest
import requests

from querydiff.codec.dialects import AnnotatedCSVDialect
from querydiff.compiler.compilers import FLUX, INFLUXQL, Plan
from querydiff.compiler.mapping import DBRPMapping
from querydiff.errors import CompileError, ExecutionError
from querydiff.execute import service as service_mod
from querydiff.execute.service import HTTPExecutionService, execute_to_buffer
from querydiff.execute.transport import PROXY_URL_ENV_VAR, build_session, resolve_proxy_url

MAPPING = DBRPMapping("cluster", "db0", "autogen", True, "cadecadecadecade", "da7aba5e5eedca5e")


def _plan(language=FLUX, mapping=None):
    return Plan(language, "q", AnnotatedCSVDialect(), "count.in.csv", {"query": "q"}, mapping)


class _WritingExecutor:
    def __init__(self, payload=b"", error=None):
        self.payload = payload
        self.error = error

    def execute(self, plan, writer):
        writer.write(self.payload)
        if self.error is not None:
            raise self.error
        return 1


@pytest.mark.parametrize("spool_max_bytes", [1 << 20, 8])
def test_execute_to_buffer_spools_output(spool_max_bytes):
    payload = b"#datatype,string,long,long\r\n,result,table,count\r\n,,0,2\r\n"

    with execute_to_buffer(_WritingExecutor(payload), _plan(), spool_max_bytes=spool_max_bytes) as output:
        assert output.read() == payload
        assert output.closed
    assert output.source == "execution:flux"


@pytest.mark.parametrize("error", [OSError("disk"), KeyError("missing"), RuntimeError("boom")])
def test_execute_to_buffer_wraps_executor_failures(error):
    with pytest.raises(ExecutionError) as excinfo:
        execute_to_buffer(_WritingExecutor(b"partial", error), _plan())

    assert excinfo.value.cause is error
    assert excinfo.value.kind == "execution_error"
    assert "failed to execute flux query" in str(excinfo.value)


def test_execute_to_buffer_passes_harness_errors_through():
    error = CompileError("late compile failure")

    with pytest.raises(CompileError) as excinfo:
        execute_to_buffer(_WritingExecutor(error=error), _plan())

    assert excinfo.value is error


def test_execute_to_buffer_does_not_swallow_programming_errors():
    with pytest.raises(AttributeError):
        execute_to_buffer(_WritingExecutor(error=AttributeError("oops")), _plan())


class _FakeRaw:
    def __init__(self, payload):
        self._buf = io.BytesIO(payload)

    def read(self, size=-1, decode_content=False):
        return self._buf.read(size)


class _FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self.raw = _FakeRaw(payload)
        self._payload = payload
        self.closed = False

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self._payload), chunk_size):
            yield self._payload[start:start + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True
        return False


class _FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.response


def test_http_execution_service_streams_body_into_writer(monkeypatch):
    monkeypatch.setattr(service_mod, "_STREAM_CHUNK_BYTES", 4)
    body = b"#datatype,string,long,long\r\n,result,table,count\r\n,,0,2\r\n"
    response = _FakeResponse(200, body)
    session = _FakeSession(response)
    service = HTTPExecutionService("http://localhost:8086/api/v2/query", session=session, timeout=5)
    writer = io.BytesIO()

    assert service.execute(_plan(INFLUXQL, MAPPING), writer) is None

    assert writer.getvalue() == body
    assert response.closed
    url, kwargs = session.calls[0]
    assert url == "http://localhost:8086/api/v2/query"
    assert kwargs["params"] == {"orgID": "cadecadecadecade", "bucketID": "da7aba5e5eedca5e"}
    assert kwargs["json"]["spec"] == {"query": "q"}
    assert kwargs["json"]["language"] == INFLUXQL
    assert kwargs["headers"]["Accept"] == "text/csv; charset=utf-8"
    assert kwargs["stream"] is True
    assert kwargs["timeout"] == 5


def test_http_execution_service_reports_error_status():
    response = _FakeResponse(400, b'{"message":"compilation failed"}')
    service = HTTPExecutionService("http://localhost:8086/api/v2/query", session=_FakeSession(response))

    with pytest.raises(ExecutionError) as excinfo:
        service.execute(_plan(), io.BytesIO())

    assert "HTTP 400" in str(excinfo.value)
    assert "compilation failed" in str(excinfo.value)
    assert response.closed


def test_http_errors_surface_through_execute_to_buffer():
    class _BrokenSession:
        def post(self, url, **kwargs):
            raise requests.ConnectionError("refused")

    service = HTTPExecutionService("http://localhost:1/query", session=_BrokenSession())

    with pytest.raises(ExecutionError) as excinfo:
        execute_to_buffer(service, _plan())

    assert isinstance(excinfo.value.cause, requests.ConnectionError)


def test_resolve_proxy_url_prefers_argument_then_environment(monkeypatch):
    monkeypatch.setenv(PROXY_URL_ENV_VAR, "http://proxy.local:3128")

    assert resolve_proxy_url("http://explicit:8080") == "http://explicit:8080"
    assert resolve_proxy_url("  ") is None
    assert resolve_proxy_url() == "http://proxy.local:3128"


def test_build_session_configures_proxy_retries_and_token():
    session = build_session(proxy_url="http://proxy.local:3128", user_agent="querydiff", token="s3cr3t")

    assert session.proxies == {"http": "http://proxy.local:3128", "https": "http://proxy.local:3128"}
    assert session.trust_env is False
    assert session.headers["Authorization"] == "Token s3cr3t"
    assert session.headers["User-Agent"] == "querydiff"
    retries = session.get_adapter("https://example.org").max_retries
    assert retries.total == 3
    assert 503 in retries.status_forcelist
