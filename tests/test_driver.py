import json
import logging

import pytest

from querydiff.codec.dialects import AnnotatedCSVDialect
from querydiff.compiler.compilers import FLUX
from querydiff.harness.cases import DECODED_MODE, GoldenCase, discover_cases
from querydiff.harness.driver import GoldenDriver, read_fixture_text
from querydiff.harness.skips import SkipRegistry
from querydiff.errors import FixtureMissingError
from tests.fakes import (
    COUNT_INPUT_CSV,
    COUNT_OUTPUT_CSV,
    FakeExecutor,
    FakeFrontend,
    count_rows,
    identity,
    write_case,
)

COUNT_FLUX = 'from(bucket: "db0/autogen") |> range(start: 0) |> count()'
COUNT_INFLUXQL = "SELECT count(usage) FROM cpu"
COUNT_OUTPUT_JSON = '{"results":[{"statement_id":0,"series":[{"name":"","columns":["count"],"values":[[2]]}]}]}'


@pytest.fixture
def executor():
    return FakeExecutor({COUNT_FLUX: count_rows, COUNT_INFLUXQL: count_rows, "SELECT * FROM cpu": identity})


@pytest.fixture
def frontend():
    return FakeFrontend(broken={"SELEC oops"})


def _write_count(directory, name="count", **overrides):
    files = {
        "flux": COUNT_FLUX,
        "influxql": COUNT_INFLUXQL,
        "input_csv": COUNT_INPUT_CSV,
        "out_csv": COUNT_OUTPUT_CSV,
        "out_json": COUNT_OUTPUT_JSON,
    }
    files.update(overrides)
    return write_case(directory, name, **files)


def _by_id(summary):
    return {outcome.case.case_id: outcome for outcome in summary.outcomes}


def test_count_case_passes_in_every_dialect(tmp_path, frontend, executor):
    _write_count(tmp_path)
    driver = GoldenDriver(frontend, executor)

    summary = driver.run_all(discover_cases(tmp_path))

    assert summary.counts() == {"pass": 3, "fail": 0, "skip": 0}, [o.report() for o in summary.outcomes]
    assert summary.ok
    assert [plan.language for plan in executor.plans] == ["flux", "influxql", "influxql"]
    influxql_plan = executor.plans[1]
    assert influxql_plan.mapping.bucket_id == "da7aba5e5eedca5e"
    assert influxql_plan.input_override == str(tmp_path / "count.in.csv")
    assert executor.plans[0].mapping is None


def test_count_case_compares_decoded_tables(tmp_path, frontend, executor):
    prefix = _write_count(tmp_path, out_csv=COUNT_OUTPUT_CSV.replace("\r\n", "\n") + "\n\n")
    case = GoldenCase(
        "count",
        FLUX,
        tmp_path / "count.flux",
        tmp_path / "count.out.csv",
        AnnotatedCSVDialect(),
        tmp_path / "count.in.csv",
        DECODED_MODE,
    )

    outcome = GoldenDriver(frontend, executor).run_case(case)

    assert outcome.passed, outcome.report()
    assert outcome.elapsed_seconds >= 0.0
    assert prefix.name == "count"


def test_missing_expected_output_skips_without_running(tmp_path, frontend, executor):
    _write_count(tmp_path, out_csv=None, out_json=None)

    summary = GoldenDriver(frontend, executor).run_all(discover_cases(tmp_path))

    assert summary.counts() == {"pass": 0, "fail": 0, "skip": 3}
    assert {o.detail for o in summary.outcomes} == {"expected output is missing"}
    assert {o.kind for o in summary.outcomes} == {"fixture_missing"}
    assert frontend.calls == []
    assert executor.plans == []


def test_missing_influxql_query_skips_only_transpiled_cases(tmp_path, frontend, executor):
    _write_count(tmp_path, influxql=None)

    outcomes = _by_id(GoldenDriver(frontend, executor).run_all(discover_cases(tmp_path)))

    assert outcomes["count.flux[csv]"].passed
    assert outcomes["count.influxql[csv]"].skipped
    assert outcomes["count.influxql[csv]"].detail == "influxql query is missing"
    assert outcomes["count.influxql[influxql_json]"].skipped


def test_missing_flux_query_fails(tmp_path, frontend, executor):
    case = GoldenCase("gone", FLUX, tmp_path / "gone.flux", tmp_path / "gone.out.csv", AnnotatedCSVDialect())

    outcome = GoldenDriver(frontend, executor).run_case(case)

    assert outcome.failed
    assert outcome.kind == "fixture_missing"


def test_registry_skip_wins_before_any_work(tmp_path, frontend, executor):
    _write_count(tmp_path, name="derivative_sum")

    summary = GoldenDriver(frontend, executor).run_all(discover_cases(tmp_path))

    assert summary.counts()["skip"] == 3
    assert all("issues/93" in o.detail for o in summary.outcomes)
    assert {o.kind for o in summary.outcomes} == {"registry"}
    assert frontend.calls == []


def test_failures_do_not_stop_other_cases(tmp_path, frontend, executor):
    _write_count(tmp_path, name="a_broken", flux="SELEC oops", influxql=None)
    _write_count(tmp_path, name="b_unknown", flux="unknown()", influxql=None)
    _write_count(tmp_path, name="c_count")

    outcomes = _by_id(GoldenDriver(frontend, executor, skips=SkipRegistry()).run_all(discover_cases(tmp_path)))

    broken = outcomes["a_broken.flux[csv]"]
    assert broken.failed
    assert broken.kind == "compile_error"
    assert "unexpected token" in broken.detail
    unknown = outcomes["b_unknown.flux[csv]"]
    assert unknown.failed
    assert unknown.kind == "execution_error"
    assert outcomes["c_count.flux[csv]"].passed
    assert outcomes["c_count.influxql[influxql_json]"].passed


def test_text_mismatch_fails_with_diff(tmp_path, frontend, executor):
    _write_count(tmp_path, out_csv=COUNT_OUTPUT_CSV.replace(",,0,2", ",,0,3"))

    outcome = _by_id(GoldenDriver(frontend, executor).run_all(discover_cases(tmp_path)))["count.flux[csv]"]

    assert outcome.failed
    assert outcome.kind == "mismatch"
    assert outcome.detail == "result not as expected want(-) got(+)"
    assert "-,,0,3" in outcome.diff
    assert "+,,0,2" in outcome.diff


def test_unknown_mapping_fails_influxql_cases(tmp_path, frontend, executor):
    _write_count(tmp_path)

    driver = GoldenDriver(frontend, executor, database="db1")
    outcomes = _by_id(driver.run_all(discover_cases(tmp_path)))

    assert outcomes["count.flux[csv]"].passed
    assert outcomes["count.influxql[csv]"].kind == "compile_error"
    assert "database='db1'" in outcomes["count.influxql[csv]"].detail


def test_generated_json_cases_compare_decoded_results(tmp_path, frontend, executor):
    series = {
        "name": "cpu",
        "tags": {"host": "a"},
        "columns": ["time", "usage"],
        "values": [["2018-05-22T19:53:26Z", 1.5], ["2018-05-22T19:53:36Z", 2]],
    }
    (tmp_path / "series.influxql").write_text("SELECT * FROM cpu\n", encoding="utf-8")
    (tmp_path / "series.in.json").write_text(
        json.dumps({"results": [{"statement_id": 0, "series": [series]}]}), encoding="utf-8"
    )
    (tmp_path / "series.out.json").write_text(
        json.dumps({"results": [{"statement_id": 0, "series": [series]}]}, indent=4), encoding="utf-8"
    )
    (tmp_path / "changed.influxql").write_text("SELECT * FROM cpu\n", encoding="utf-8")
    (tmp_path / "changed.in.json").write_text(
        json.dumps({"results": [{"statement_id": 0, "series": [series]}]}), encoding="utf-8"
    )
    series["values"] = series["values"][::-1]
    (tmp_path / "changed.out.json").write_text(
        json.dumps({"results": [{"statement_id": 0, "series": [series]}]}), encoding="utf-8"
    )
    empty_dir = tmp_path / "flux"
    empty_dir.mkdir()

    outcomes = _by_id(
        GoldenDriver(frontend, executor).run_all(discover_cases(empty_dir, generated_directory=tmp_path))
    )

    assert outcomes["series.influxql[influxql_json]"].passed
    changed = outcomes["changed.influxql[influxql_json]"]
    assert changed.failed
    assert changed.kind == "mismatch"
    assert "row 0 column 'time'" in changed.detail


def test_malformed_expected_fixture_fails_decoded_case(tmp_path, frontend, executor):
    _write_count(tmp_path, out_csv="#datatype,string,long,nope\n,result,table,count\n,,0,2\n")
    case = GoldenCase(
        "count",
        FLUX,
        tmp_path / "count.flux",
        tmp_path / "count.out.csv",
        AnnotatedCSVDialect(),
        tmp_path / "count.in.csv",
        DECODED_MODE,
    )

    outcome = GoldenDriver(frontend, executor).run_case(case)

    assert outcome.failed
    assert outcome.kind == "decode_error"
    assert outcome.detail.startswith("line 1: unknown type")
    assert executor.plans == []


def test_unexpected_errors_are_reported_as_internal(tmp_path, frontend, caplog):
    _write_count(tmp_path, influxql=None)
    executor = FakeExecutor(fail_with=AttributeError("executor bug"))

    with caplog.at_level(logging.INFO, logger="querydiff.harness.driver"):
        summary = GoldenDriver(frontend, executor).run_all(discover_cases(tmp_path))

    outcome = _by_id(summary)["count.flux[csv]"]
    assert outcome.kind == "internal_error"
    assert outcome.detail == "AttributeError: executor bug"
    events = [json.loads(r.getMessage()) for r in caplog.records if r.getMessage().startswith("{")]
    finished = [e for e in events if e["event"] == "case_finished"]
    assert len(finished) == 3
    assert finished[0]["status"] == "fail"
    assert finished[0]["run_id"].startswith("run_")
    assert events[-1]["event"] == "run_finished"
    assert events[-1]["skip"] == 2


def test_read_fixture_text_maps_missing_files(tmp_path):
    with pytest.raises(FixtureMissingError) as excinfo:
        read_fixture_text(tmp_path / "absent.flux")

    assert excinfo.value.path == str(tmp_path / "absent.flux")


class _RawBytesExecutor(object):
    def __init__(self, payload):
        self.payload = payload

    def execute(self, plan, writer):
        writer.write(self.payload)
        return 1


def test_invalid_utf8_expected_fixture_is_a_decode_error(tmp_path, frontend, executor):
    _write_count(tmp_path)
    (tmp_path / "count.out.csv").write_bytes(b"#datatype,string,long,string\n,result,table,x\n,,0,\xff\xfe\n")
    case = GoldenCase(
        "count",
        FLUX,
        tmp_path / "count.flux",
        tmp_path / "count.out.csv",
        AnnotatedCSVDialect(),
        tmp_path / "count.in.csv",
        DECODED_MODE,
    )

    outcome = GoldenDriver(frontend, executor).run_case(case)

    assert outcome.failed
    assert outcome.kind == "decode_error"
    assert outcome.detail.startswith("line 3: invalid UTF-8")


def test_invalid_utf8_execution_output_is_a_decode_error(tmp_path, frontend):
    _write_count(tmp_path)
    executor = _RawBytesExecutor(b"#datatype,string,long,long\n,result,table,count\n,,0,\xff\n")
    case = GoldenCase(
        "count",
        FLUX,
        tmp_path / "count.flux",
        tmp_path / "count.out.csv",
        AnnotatedCSVDialect(),
        tmp_path / "count.in.csv",
    )

    outcome = GoldenDriver(frontend, executor).run_case(case)

    assert outcome.failed
    assert outcome.kind == "decode_error"
    assert outcome.detail.startswith("line 3: flux output is not valid UTF-8")
