"""SARIF report parsing and severity resolution."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, NamedTuple

from qgate.errors import ErrorCode, ParseError

from .models import Finding, SeveritySource, Summary

logger = logging.getLogger(__name__)

# No SARIF level maps to 4 (high).
LEVEL_SEVERITY = {
    "error": 5,
    "warning": 3,
    "note": 2,
}
DEFAULT_SEVERITY = 1


class ParsedReport(NamedTuple):
    summary: Summary
    findings: list[Finding]


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_severity(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return int(value)


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _text(node: Any) -> str:
    return str(_as_dict(node).get("text") or "").strip()


def build_rule_table(run: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Index a run's ``tool.driver.rules`` by rule id."""
    driver = _as_dict(_as_dict(run.get("tool")).get("driver"))
    table: dict[str, dict[str, Any]] = {}
    for rule in _as_list(driver.get("rules")):
        rule = _as_dict(rule)
        rule_id = rule.get("id")
        if rule_id:
            table[str(rule_id)] = rule
    return table


def resolve_severity(
    result: dict[str, Any], rules: dict[str, dict[str, Any]]
) -> tuple[int, SeveritySource]:
    """
    Resolve a result's 1-5 severity.

    Order: the result's own ``properties.severity``, then the matching rule's
    ``properties.severity``, then the SARIF ``level``, then informational.
    """
    direct = _as_severity(_as_dict(result.get("properties")).get("severity"))
    if direct is not None:
        return direct, SeveritySource.RESULT

    rule = rules.get(str(result.get("ruleId") or ""))
    if rule is not None:
        from_rule = _as_severity(_as_dict(rule.get("properties")).get("severity"))
        if from_rule is not None:
            return from_rule, SeveritySource.RULE

    level = result.get("level")
    if level in LEVEL_SEVERITY:
        return LEVEL_SEVERITY[level], SeveritySource.LEVEL
    return DEFAULT_SEVERITY, SeveritySource.DEFAULT


def _location(result: dict[str, Any]) -> str | None:
    locations = _as_list(result.get("locations"))
    if not locations:
        return None
    first = _as_dict(locations[0])
    uri = _as_dict(_as_dict(first.get("physicalLocation")).get("artifactLocation")).get("uri")
    if uri:
        return str(uri)
    logical = _as_list(first.get("logicalLocations"))
    if logical and _as_dict(logical[0]).get("name"):
        return str(logical[0]["name"])
    return None


def _qid(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def finding_from_result(
    result: dict[str, Any], rules: dict[str, dict[str, Any]]
) -> Finding:
    """Normalize one SARIF result into a ``Finding``."""
    props = _as_dict(result.get("properties"))
    rule_id = str(result.get("ruleId") or "")
    rule = rules.get(rule_id, {})
    severity, source = resolve_severity(result, rules)
    message = _text(result.get("message"))

    return Finding(
        rule_id=rule_id,
        severity=severity,
        severity_source=source,
        message=message,
        level=_as_str(result.get("level")),
        title=_text(rule.get("shortDescription")) or message,
        description=_text(rule.get("fullDescription")) or message,
        cvss_score=_as_float(props.get("cvssScore")),
        cves=tuple(str(cve) for cve in _as_list(props.get("cves")) if cve),
        qid=_qid(props.get("qid")),
        package_name=_as_str(props.get("packageName")),
        installed_version=_as_str(props.get("installedVersion")),
        fixed_version=_as_str(props.get("fixedVersion")),
        location=_location(result),
        licenses=tuple(str(item) for item in _as_list(props.get("licenses")) if item),
    )


def parse_document(document: Any) -> ParsedReport:
    """Interpret an already-decoded SARIF document."""
    if not isinstance(document, dict):
        raise ParseError(ErrorCode.REPORT_PARSE_ERROR, "SARIF report must be a JSON object")
    runs = document.get("runs", [])
    if not isinstance(runs, list):
        raise ParseError(ErrorCode.REPORT_PARSE_ERROR, "SARIF 'runs' must be a list")

    findings: list[Finding] = []
    for run in runs:
        run = _as_dict(run)
        rules = build_rule_table(run)
        for result in _as_list(run.get("results")):
            if isinstance(result, dict):
                findings.append(finding_from_result(result, rules))
    return ParsedReport(Summary.from_findings(findings), findings)


def parse_report(path: Path | str) -> ParsedReport:
    """Read and interpret a SARIF report file."""
    report_path = Path(path)
    if not report_path.is_file():
        raise ParseError(ErrorCode.REPORT_NOT_FOUND, f"SARIF report not found at {report_path}")
    try:
        document = json.loads(report_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ParseError(
            ErrorCode.REPORT_PARSE_ERROR, f"Malformed SARIF report {report_path}: {exc}"
        ) from exc
    parsed = parse_document(document)
    logger.debug("Parsed %d findings from %s", parsed.summary.total, report_path)
    return parsed
