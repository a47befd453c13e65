from __future__ import annotations

from dataclasses import replace
import logging
from pathlib import Path

from querydiff.compare.comparator import compare_results, compare_text
from querydiff.compiler.compilers import FLUX, compiler_for
from querydiff.compiler.mapping import StaticDBRPMappingService
from querydiff.config import get_runtime_defaults
from querydiff.errors import DecodeError, FixtureMissingError, FixtureUnreadableError, QueryDiffError
from querydiff.execute.service import execute_to_buffer
from querydiff.harness import outcome as outcomes
from querydiff.harness.cases import TEXT_MODE
from querydiff.harness.skips import SkipRegistry
from querydiff.util.core import open_fixture
from querydiff.util.logging import log_structured_event, new_run_id
from querydiff.util.timing import timed

LOG = logging.getLogger(__name__)


def read_fixture_text(path) -> str:
    """Read a whole fixture. A missing file is FixtureMissingError, any other failure FixtureUnreadableError."""
    path = Path(path)
    try:
        with open_fixture(path) as stream:
            payload = stream.read()
    except FileNotFoundError as exc:
        raise FixtureMissingError("fixture %s does not exist" % path, path, exc) from exc
    except OSError as exc:
        raise FixtureUnreadableError("cannot read fixture %s" % path, path, exc) from exc
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FixtureUnreadableError("fixture %s is not valid UTF-8" % path, path, exc) from exc


def open_expected(path):
    path = Path(path)
    try:
        return open_fixture(path)
    except FileNotFoundError as exc:
        raise FixtureMissingError("fixture %s does not exist" % path, path, exc) from exc
    except OSError as exc:
        raise FixtureUnreadableError("cannot read fixture %s" % path, path, exc) from exc


class GoldenDriver(object):
    """
    Runs golden cases
    =================

    For every case the driver consults the skip registry, reads the query,
    compiles it through the matching adapter and the external ``frontend``,
    executes the plan through ``executor`` and checks the output against the
    expected fixture, either as text or as decoded tables.

    Each case ends in exactly one outcome: pass, fail (with the error kind and
    detail, plus a diff for mismatches) or skip (with a reason). Nothing a
    single case does stops the remaining cases from running.

    The skip registry and the mapping service are built once and only read
    while cases run.
    """

    def __init__(
        self,
        frontend,
        executor,
        *,
        mapping_service=None,
        skips: SkipRegistry | None = None,
        defaults=None,
        cluster: str | None = None,
        database: str | None = None,
        retention_policy: str = "",
    ):
        if defaults is None:
            defaults = get_runtime_defaults()
        harness_defaults = defaults.harness_defaults
        self.frontend = frontend
        self.executor = executor
        self.mapping_service = mapping_service or StaticDBRPMappingService.from_config(defaults)
        self.skips = skips if skips is not None else SkipRegistry.from_config(defaults)
        self.cluster = harness_defaults.default_cluster if cluster is None else cluster
        self.database = harness_defaults.default_database if database is None else database
        self.retention_policy = retention_policy
        self.spool_max_bytes = harness_defaults.spool_max_bytes
        self.diff_context_lines = harness_defaults.diff_context_lines
        self.missing_expected_reason = harness_defaults.missing_expected_reason
        self.missing_query_reason = harness_defaults.missing_query_reason
        self.run_id = new_run_id("run")

    def build_compiler(self, case, query):
        return compiler_for(
            case.language,
            query,
            input_override=case.input_path,
            mapping_service=self.mapping_service,
            cluster=self.cluster,
            database=self.database,
            retention_policy=self.retention_policy,
        )

    def _execute(self, plan):
        return execute_to_buffer(self.executor, plan, spool_max_bytes=self.spool_max_bytes)

    def check_text(self, case, plan):
        want = read_fixture_text(case.expected_path)
        with self._execute(plan) as output:
            payload = output.read()
        try:
            got = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            line = payload.count(b"\n", 0, exc.start) + 1
            raise DecodeError("%s output is not valid UTF-8" % plan.language, line=line, cause=exc) from exc
        return compare_text(want, got, context_lines=self.diff_context_lines)

    def check_decoded(self, case, plan):
        decoder = case.dialect.decoder()
        expected = decoder.decode(open_expected(case.expected_path))
        try:
            actual = decoder.decode(self._execute(plan))
        except BaseException:
            expected.release()
            raise
        return compare_results(expected, actual, context_lines=self.diff_context_lines)

    def _run_case(self, case):
        reason = self.skips.reason_for(case.name)
        if reason is not None:
            return outcomes.skipped(case, reason, kind="registry")
        try:
            query = read_fixture_text(case.query_path)
        except FixtureMissingError as exc:
            if case.language == FLUX:
                return outcomes.failed(case, exc.kind, str(exc))
            return outcomes.skipped(case, self.missing_query_reason, kind=exc.kind)
        if not Path(case.expected_path).exists():
            return outcomes.skipped(case, self.missing_expected_reason, kind=FixtureMissingError.kind)

        plan = self.build_compiler(case, query).compile(self.frontend, case.dialect)
        if case.mode == TEXT_MODE:
            verdict = self.check_text(case, plan)
        else:
            verdict = self.check_decoded(case, plan)
        if verdict.equal:
            return outcomes.passed(case)
        return outcomes.failed(case, "mismatch", verdict.reason, verdict.diff)

    def run_case(self, case) -> outcomes.CaseOutcome:
        with timed() as timing:
            try:
                outcome = self._run_case(case)
            except FixtureMissingError as exc:
                outcome = outcomes.skipped(case, self.missing_expected_reason, kind=exc.kind)
            except QueryDiffError as exc:
                outcome = outcomes.failed(case, exc.kind, str(exc))
            except Exception as exc:
                # A broken case is reported, the run carries on.
                LOG.exception("Unexpected error while running case %s", case.case_id)
                outcome = outcomes.failed(case, "internal_error", "%s: %s" % (type(exc).__name__, exc))
        outcome = replace(outcome, elapsed_seconds=timing.seconds)
        log_structured_event(
            LOG,
            logging.WARNING if outcome.failed else logging.INFO,
            "case_finished",
            run_id=self.run_id,
            case=case.case_id,
            mode=case.mode,
            status=outcome.status,
            kind=outcome.kind,
            detail=outcome.detail or None,
            elapsed_ms=round(outcome.elapsed_seconds * 1000.0, 3),
        )
        return outcome

    def run_all(self, cases) -> outcomes.RunSummary:
        summary = outcomes.RunSummary(run_id=self.run_id)
        for case in cases:
            summary.outcomes.append(self.run_case(case))
        log_structured_event(LOG, logging.INFO, "run_finished", run_id=self.run_id, **summary.counts())
        return summary
