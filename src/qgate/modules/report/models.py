"""Finding and summary models for parsed scan reports."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

SEVERITY_LABELS = {
    5: "Critical",
    4: "High",
    3: "Medium",
    2: "Low",
    1: "Informational",
}


class SeveritySource(StrEnum):
    """Where a finding's resolved severity came from."""

    RESULT = "result"
    RULE = "rule"
    LEVEL = "level"
    DEFAULT = "default"


@dataclass(frozen=True)
class Finding:
    """One SARIF result with its severity resolved."""

    rule_id: str
    severity: int
    severity_source: SeveritySource
    message: str = ""
    level: str | None = None
    title: str = ""
    description: str = ""
    cvss_score: float | None = None
    cves: tuple[str, ...] = ()
    qid: int | None = None
    package_name: str | None = None
    installed_version: str | None = None
    fixed_version: str | None = None
    location: str | None = None
    licenses: tuple[str, ...] = ()

    @property
    def identity(self) -> str:
        """Deduplication key: first CVE, else ``QID-<n>``, else the rule id."""
        if self.cves:
            return self.cves[0]
        if self.qid:
            return f"QID-{self.qid}"
        return self.rule_id

    @property
    def severity_label(self) -> str:
        return SEVERITY_LABELS.get(self.severity, "Unknown")


@dataclass(frozen=True)
class Summary:
    """Finding counts per severity bucket."""

    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    informational: int = 0

    @classmethod
    def from_findings(cls, findings: Iterable[Finding]) -> Summary:
        counts = {5: 0, 4: 0, 3: 0, 2: 0}
        total = 0
        informational = 0
        for finding in findings:
            total += 1
            if finding.severity in counts:
                counts[finding.severity] += 1
            else:
                informational += 1
        return cls(
            total=total,
            critical=counts[5],
            high=counts[4],
            medium=counts[3],
            low=counts[2],
            informational=informational,
        )

    def count_for(self, level: int) -> int:
        """Count for the bucket at a severity level (1 is informational)."""
        return {
            5: self.critical,
            4: self.high,
            3: self.medium,
            2: self.low,
            1: self.informational,
        }.get(level, 0)
