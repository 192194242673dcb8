"""Turn findings into deduplicated tracker tickets."""

from __future__ import annotations

import html
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from qgate.modules.report.models import SEVERITY_LABELS, Finding

logger = logging.getLogger(__name__)

TAG_PREFIX = "qgate-vuln"
SOURCE_LABELS = {"container": "Container Scan", "sca": "SCA Scan"}
SEVERITY_TO_PRIORITY = {5: 1, 4: 2, 3: 3, 2: 4, 1: 4}
MAX_TITLE_LENGTH = 200


@dataclass(frozen=True)
class NormalizedVulnerability:
    """A finding reduced to what a ticket needs."""

    id: str
    title: str
    description: str
    severity: int
    source: str
    cvss_score: float | None = None
    package_name: str | None = None
    installed_version: str | None = None
    fixed_version: str | None = None
    location: str | None = None

    @property
    def tag(self) -> str:
        return f"{TAG_PREFIX}:{self.id}"


@dataclass(frozen=True)
class TicketDraft:
    """Tracker-agnostic ticket content."""

    title: str
    description: str
    priority: int
    tags: tuple[str, ...]


@dataclass
class TicketCreationResult:
    created: int = 0
    skipped: int = 0
    failed: int = 0
    ids: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class TicketTracker(Protocol):
    """What the mapper needs from an issue tracker."""

    async def find_existing(self, tag: str) -> bool: ...

    async def create(self, draft: TicketDraft) -> int: ...


def prepare_tickets(
    findings: Iterable[Finding],
    min_severity: int,
    source: str = "sca",
) -> list[NormalizedVulnerability]:
    """Filter by severity and collapse findings that share an identity."""
    unique: dict[str, NormalizedVulnerability] = {}
    for finding in findings:
        if finding.severity < min_severity:
            continue
        identity = finding.identity
        if not identity or identity in unique:
            continue
        unique[identity] = NormalizedVulnerability(
            id=identity,
            title=finding.title or finding.message or identity,
            description=finding.description or finding.message,
            severity=finding.severity,
            source=source,
            cvss_score=finding.cvss_score,
            package_name=finding.package_name,
            installed_version=finding.installed_version,
            fixed_version=finding.fixed_version,
            location=finding.location,
        )
    return list(unique.values())


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def build_description(vuln: NormalizedVulnerability) -> str:
    """HTML body for a vulnerability ticket."""
    esc = html.escape
    label = SEVERITY_LABELS.get(vuln.severity, "Unknown")
    rows = [
        ("ID", esc(vuln.id)),
        ("Severity", f"{label} ({vuln.severity})"),
    ]
    if vuln.cvss_score is not None:
        rows.append(("CVSS Score", f"{vuln.cvss_score:g}"))
    if vuln.package_name:
        package = esc(vuln.package_name)
        if vuln.installed_version:
            package += f" {esc(vuln.installed_version)}"
        rows.append(("Package", package))
    if vuln.fixed_version:
        rows.append(("Fixed Version", esc(vuln.fixed_version)))
    if vuln.location:
        rows.append(("Location", esc(vuln.location)))
    rows.append(("Source", SOURCE_LABELS.get(vuln.source, vuln.source)))

    parts = ["<h3>Vulnerability Details</h3>", "<table>"]
    parts.extend(f"  <tr><td><b>{name}</b></td><td>{value}</td></tr>" for name, value in rows)
    parts.append("</table>")
    if vuln.description:
        parts.append(f"<h3>Description</h3>\n<p>{esc(vuln.description)}</p>")
    if vuln.fixed_version:
        package = esc(vuln.package_name or "the affected package")
        parts.append(
            f"<h3>Remediation</h3>\n<p>Update {package} to version "
            f"{esc(vuln.fixed_version)} or later.</p>"
        )
    parts.append("<hr>\n<p><i>Created by qgate</i></p>")
    return "\n".join(parts)


def build_draft(vuln: NormalizedVulnerability) -> TicketDraft:
    label = SEVERITY_LABELS.get(vuln.severity, "Unknown")
    return TicketDraft(
        title=f"[{label}] {vuln.id}: {_truncate(vuln.title, MAX_TITLE_LENGTH)}",
        description=build_description(vuln),
        priority=SEVERITY_TO_PRIORITY.get(vuln.severity, 3),
        tags=(
            vuln.tag,
            "security",
            label.lower(),
            f"qgate-{vuln.source}-scan",
        ),
    )


async def create_tickets(
    vulnerabilities: Iterable[NormalizedVulnerability],
    tracker: TicketTracker,
) -> TicketCreationResult:
    """Create one ticket per vulnerability that has no open ticket yet."""
    result = TicketCreationResult()
    for vuln in vulnerabilities:
        try:
            exists = await tracker.find_existing(vuln.tag)
        except Exception:
            logger.warning("Duplicate lookup failed for %s; assuming none", vuln.id, exc_info=True)
            exists = False

        if exists:
            logger.info("Skipping duplicate: %s", vuln.id)
            result.skipped += 1
            continue

        try:
            ticket_id = await tracker.create(build_draft(vuln))
        except Exception as exc:
            result.failed += 1
            message = f"Failed to create ticket for {vuln.id}: {exc}"
            result.errors.append(message)
            logger.error(message)
            continue

        result.created += 1
        result.ids.append(ticket_id)
        logger.info("Created ticket #%s for %s", ticket_id, vuln.id)
    return result
