"""Structured report parsing."""

from .models import SEVERITY_LABELS, Finding, SeveritySource, Summary
from .sarif import ParsedReport, parse_document, parse_report, resolve_severity

__all__ = [
    "SEVERITY_LABELS",
    "Finding",
    "ParsedReport",
    "SeveritySource",
    "Summary",
    "parse_document",
    "parse_report",
    "resolve_severity",
]
