from querydiff.harness.cases import DECODED_MODE, TEXT_MODE, GoldenCase, discover_cases
from querydiff.harness.driver import GoldenDriver, read_fixture_text
from querydiff.harness.outcome import FAILED, PASSED, SKIPPED, CaseOutcome, RunSummary
from querydiff.harness.skips import SkipRegistry

__all__ = [
    "DECODED_MODE",
    "TEXT_MODE",
    "GoldenCase",
    "discover_cases",
    "GoldenDriver",
    "read_fixture_text",
    "FAILED",
    "PASSED",
    "SKIPPED",
    "CaseOutcome",
    "RunSummary",
    "SkipRegistry",
]
