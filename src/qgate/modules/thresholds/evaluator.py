"""Local pass/fail evaluation of scan findings."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from qgate.errors import ConfigurationError, ErrorCode
from qgate.modules.report.models import Finding, Summary

_BUCKET_REASONS = (
    (5, "Found {count} critical vulnerabilities"),
    (4, "Found {count} high severity vulnerabilities"),
    (3, "Found {count} medium severity vulnerabilities"),
    (2, "Found {count} low severity vulnerabilities"),
    (1, "Found {count} informational vulnerabilities"),
)


def _split(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass(frozen=True)
class ThresholdPolicy:
    """Declarative failure thresholds."""

    min_severity: int = 0
    cvss_floor: float | None = None
    blocked_cves: frozenset[str] = frozenset()
    blocked_licenses: frozenset[str] = frozenset()
    excluded_qids: frozenset[int] = frozenset()

    @classmethod
    def from_inputs(
        cls,
        fail_on_severity: str | int | None = None,
        fail_on_cvss: str | float | None = None,
        fail_on_cves: str | None = None,
        fail_on_licenses: str | None = None,
        exclude_qids: str | None = None,
    ) -> ThresholdPolicy:
        """Build a policy from raw (usually comma-separated) task inputs."""
        qids: set[int] = set()
        for part in _split(exclude_qids):
            if part.isdigit():
                qids.add(int(part))
        try:
            min_severity = int(fail_on_severity or 0)
        except ValueError as exc:
            raise ConfigurationError(
                ErrorCode.INVALID_CONFIGURATION,
                f"failOnSeverity must be an integer, got {fail_on_severity!r}",
            ) from exc
        cvss = None
        if fail_on_cvss not in (None, ""):
            try:
                cvss = float(fail_on_cvss)
            except ValueError as exc:
                raise ConfigurationError(
                    ErrorCode.INVALID_CONFIGURATION,
                    f"failOnCvss must be a number, got {fail_on_cvss!r}",
                ) from exc
        return cls(
            min_severity=min_severity,
            cvss_floor=cvss,
            blocked_cves=frozenset(_split(fail_on_cves)),
            blocked_licenses=frozenset(_split(fail_on_licenses)),
            excluded_qids=frozenset(qids),
        )


@dataclass(frozen=True)
class Verdict:
    """Pass/fail outcome with the reasons that caused a failure."""

    passed: bool
    reasons: tuple[str, ...]
    summary: Summary


def _unique(values: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return list(seen)


def evaluate(
    summary: Summary,
    findings: Sequence[Finding] | None,
    policy: ThresholdPolicy,
) -> Verdict:
    """
    Apply ``policy`` to a report.

    When findings are supplied, excluded QIDs are dropped first and the
    summary is recomputed from what remains; otherwise ``summary`` is used
    as given and only the severity floor can apply.
    """
    considered: list[Finding] = []
    if findings is not None:
        considered = [f for f in findings if f.qid is None or f.qid not in policy.excluded_qids]
        summary = Summary.from_findings(considered)

    reasons: list[str] = []

    if policy.min_severity > 0:
        for level, template in _BUCKET_REASONS:
            count = summary.count_for(level)
            if level >= policy.min_severity and count > 0:
                reasons.append(template.format(count=count))

    if policy.cvss_floor is not None and policy.cvss_floor > 0:
        above = [
            f for f in considered if f.cvss_score is not None and f.cvss_score >= policy.cvss_floor
        ]
        if above:
            reasons.append(
                f"Found {len(above)} vulnerabilities with CVSS score >= {policy.cvss_floor:g}"
            )

    if policy.blocked_cves:
        blocked = _unique(cve for f in considered for cve in f.cves if cve in policy.blocked_cves)
        if blocked:
            reasons.append(f"Found blocked CVEs: {', '.join(blocked)}")

    if policy.blocked_licenses:
        blocked = _unique(
            lic for f in considered for lic in f.licenses if lic in policy.blocked_licenses
        )
        if blocked:
            reasons.append(f"Found blocked licenses: {', '.join(blocked)}")

    return Verdict(passed=not reasons, reasons=tuple(reasons), summary=summary)
