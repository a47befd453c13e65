from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

PASSED = "pass"
FAILED = "fail"
SKIPPED = "skip"


@dataclass(frozen=True)
class CaseOutcome:
    case: object
    status: str
    detail: str = ""
    kind: str | None = None
    diff: str = ""
    elapsed_seconds: float = 0.0

    @property
    def passed(self) -> bool:
        return self.status == PASSED

    @property
    def failed(self) -> bool:
        return self.status == FAILED

    @property
    def skipped(self) -> bool:
        return self.status == SKIPPED

    def report(self) -> str:
        text = "%s %s" % (self.status.upper(), self.case.case_id)
        if self.detail:
            text += ": " + self.detail
        if self.diff:
            text += "\n" + self.diff
        return text


def passed(case) -> CaseOutcome:
    return CaseOutcome(case, PASSED)


def failed(case, kind, detail, diff="") -> CaseOutcome:
    return CaseOutcome(case, FAILED, detail=detail, kind=kind, diff=diff)


def skipped(case, reason, kind=None) -> CaseOutcome:
    return CaseOutcome(case, SKIPPED, detail=reason, kind=kind)


@dataclass
class RunSummary:
    run_id: str
    outcomes: list[CaseOutcome] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        counter = Counter(o.status for o in self.outcomes)
        return {status: counter.get(status, 0) for status in (PASSED, FAILED, SKIPPED)}

    def failures(self) -> list[CaseOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def ok(self) -> bool:
        return not self.failures()
