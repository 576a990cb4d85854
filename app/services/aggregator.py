"""Severity aggregation: many per-image analyses in, one triage result out."""

from typing import Dict, Iterable, Optional

from pydantic import BaseModel

from app.core.constants import Severity, DEFAULT_BASE_AMOUNT, DEFAULT_SEVERITY_MULTIPLIERS
from app.models.claim import DamageAnalysis


class AggregateResult(BaseModel):
    severity: Severity
    estimated_amount: float
    analyses_used: int


class SeverityAggregator:
    """
    Pure function object; no I/O.

    Overall severity is the maximum under minor < moderate < severe, with
    confidence ignored. Empty input yields minor. The amount is
    base_amount * multiplier(overall).
    """

    def __init__(
        self,
        base_amount: float = DEFAULT_BASE_AMOUNT,
        multipliers: Optional[Dict] = None
    ):
        if base_amount < 0:
            raise ValueError("base_amount must be >= 0")

        resolved = dict(DEFAULT_SEVERITY_MULTIPLIERS)
        for key, value in (multipliers or {}).items():
            resolved[Severity(key)] = float(value)
        if any(value < 0 for value in resolved.values()):
            raise ValueError("severity multipliers must be >= 0")

        self.base_amount = float(base_amount)
        self.multipliers: Dict[Severity, float] = resolved

    @classmethod
    def from_settings(cls, config) -> "SeverityAggregator":
        return cls(config.BASE_ESTIMATE_AMOUNT, config.SEVERITY_MULTIPLIERS)

    def overall_severity(self, analyses: Iterable[DamageAnalysis]) -> Severity:
        overall = Severity.MINOR
        for analysis in analyses:
            if analysis.succeeded and analysis.severity.rank > overall.rank:
                overall = analysis.severity
        return overall

    def estimate(self, severity: Severity) -> float:
        return self.base_amount * self.multipliers[severity]

    def aggregate(self, analyses: Iterable[DamageAnalysis]) -> AggregateResult:
        usable = [a for a in analyses if a.succeeded]
        severity = self.overall_severity(usable)
        return AggregateResult(
            severity=severity,
            estimated_amount=self.estimate(severity),
            analyses_used=len(usable),
        )
