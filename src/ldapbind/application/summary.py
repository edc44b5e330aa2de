"""
Run summary: what changed, what was skipped, what failed, what to do next.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ldapbind.domain.models import (
    MutationOutcome,
    MutationResult,
    RevertOutcome,
    RevertResult,
    RunMode,
    ValidationCheck,
)


@dataclass
class StageReport:
    """Everything one stage produced."""
    name: str
    title: str = ""
    mutations: list[MutationResult] = field(default_factory=list)
    reverts: list[RevertResult] = field(default_factory=list)
    checks: list[ValidationCheck] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    follow_ups: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def changed(self) -> list[MutationResult]:
        return [m for m in self.mutations if m.outcome == MutationOutcome.APPLIED]

    @property
    def skipped(self) -> list[MutationResult]:
        return [m for m in self.mutations if m.outcome.is_skip]

    @property
    def failed(self) -> bool:
        return bool(
            self.errors
            or any(m.outcome == MutationOutcome.FAILED for m in self.mutations)
            or any(r.outcome == RevertOutcome.FAILED for r in self.reverts)
            or any(c.failed for c in self.checks)
        )


@dataclass
class RunSummary:
    """Aggregated result of a run, rendered by the CLI and mapped to the exit code."""
    mode: RunMode
    stages: list[StageReport] = field(default_factory=list)
    follow_ups: list[str] = field(default_factory=list)
    aborted: bool = False
    abort_reason: str = ""

    def stage(self, name: str) -> StageReport | None:
        for report in self.stages:
            if report.name == name:
                return report
        return None

    @property
    def mutations(self) -> list[MutationResult]:
        return [m for s in self.stages for m in s.mutations]

    @property
    def reverts(self) -> list[RevertResult]:
        return [r for s in self.stages for r in s.reverts]

    @property
    def checks(self) -> list[ValidationCheck]:
        return [c for s in self.stages for c in s.checks]

    def count(self, outcome: MutationOutcome | RevertOutcome) -> int:
        if isinstance(outcome, MutationOutcome):
            return sum(1 for m in self.mutations if m.outcome == outcome)
        return sum(1 for r in self.reverts if r.outcome == outcome)

    @property
    def failed_stages(self) -> list[StageReport]:
        return [s for s in self.stages if s.failed]

    @property
    def success(self) -> bool:
        return not self.aborted and not self.failed_stages
