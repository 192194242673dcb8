"""Shared flow for scan tasks: run, interpret, gate, report."""

import logging
import tempfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from qgate.environment import Environment, TaskResult
from qgate.modules.report import Finding, Summary, parse_report
from qgate.modules.scanner import (
    ExecutionResult,
    PolicyOutcome,
    ScanConfiguration,
    ScanExecutor,
    ScanRequest,
    ScanSession,
    prepare_session,
)
from qgate.modules.thresholds import ThresholdPolicy, Verdict, evaluate
from qgate.modules.tickets import AzureBoardsTracker, TicketTracker, create_tickets, prepare_tickets

logger = logging.getLogger(__name__)

DEFAULT_FAIL_ON_SEVERITY = "4"
DEFAULT_SCAN_TIMEOUT = 300

SessionFactory = Callable[[ScanConfiguration, Path], Awaitable[ScanSession]]
ExecutorFactory = Callable[[ScanSession], ScanExecutor]
TrackerFactory = Callable[[str, str, str, str | None], TicketTracker]


def split_input(value: str | None) -> tuple[str, ...]:
    """Split a comma-separated input into trimmed, non-empty parts."""
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def int_input(env: Environment, name: str, default: int) -> int:
    raw = env.get_input(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r; using %d", name, raw, default)
        return default


def resolve_output_dir(env: Environment, folder: str) -> Path:
    """Use ``outputDir`` when given, else a folder under the agent temp dir."""
    configured = env.get_input("outputDir")
    if configured:
        return Path(configured)
    base = env.get_variable("Agent.TempDirectory") or tempfile.gettempdir()
    return Path(base) / folder


def threshold_policy_from(env: Environment) -> ThresholdPolicy:
    return ThresholdPolicy.from_inputs(
        fail_on_severity=env.get_input("failOnSeverity") or DEFAULT_FAIL_ON_SEVERITY,
        fail_on_cvss=env.get_input("failOnCvss"),
        fail_on_cves=env.get_input("failOnCves"),
        fail_on_licenses=env.get_input("failOnLicenses"),
        exclude_qids=env.get_input("excludeQids"),
    )


def decide(
    result: ExecutionResult,
    summary: Summary,
    findings: list[Finding],
    policy: ThresholdPolicy,
    use_policy_evaluation: bool,
) -> Verdict:
    """Combine the scanner's policy outcome or local thresholds with the exit status."""
    reasons: list[str] = []
    if use_policy_evaluation:
        if result.policy_result is PolicyOutcome.DENY:
            reasons.append("Qualys policy evaluation returned DENY")
        elif result.policy_result is PolicyOutcome.AUDIT:
            logger.warning("No Qualys policies matched for evaluation (AUDIT)")
    else:
        local = evaluate(summary, findings, policy)
        reasons.extend(local.reasons)
        summary = local.summary
        if result.report_file is None and not result.execution_failed:
            reasons.append(f"SARIF report not found in {result.output_dir}")

    failure = result.execution_error()
    if failure is not None:
        reasons.append(failure.args[0])
        if failure.stderr.strip():
            logger.error("QScanner stderr:\n%s", failure.stderr_tail())
    return Verdict(passed=not reasons, reasons=tuple(reasons), summary=summary)


def publish_summary(env: Environment, summary: Summary, result: ExecutionResult) -> None:
    env.set_variable("vulnerabilityCount", str(summary.total))
    env.set_variable("criticalCount", str(summary.critical))
    env.set_variable("highCount", str(summary.high))
    env.set_variable("mediumCount", str(summary.medium))
    env.set_variable("lowCount", str(summary.low))
    env.set_variable("policyResult", str(result.policy_result))
    env.set_variable("reportPath", str(result.report_file or ""))

    logger.info("Total Vulnerabilities: %d", summary.total)
    logger.info("  Critical: %d", summary.critical)
    logger.info("  High: %d", summary.high)
    logger.info("  Medium: %d", summary.medium)
    logger.info("  Low: %d", summary.low)
    logger.info("  Informational: %d", summary.informational)


def _azure_boards(org: str, project: str, token: str, area_path: str | None) -> TicketTracker:
    return AzureBoardsTracker(org, project, token, area_path=area_path)


async def file_tickets(
    env: Environment,
    findings: list[Finding],
    source: str,
    tracker_factory: TrackerFactory | None = None,
) -> int:
    """Create work items for findings when enabled; problems only warn."""
    if not env.get_bool_input("createWorkItems"):
        return 0

    token = env.get_variable("System.AccessToken")
    organization_url = env.get_variable("System.TeamFoundationCollectionUri")
    project = env.get_variable("System.TeamProject")
    if not token:
        logger.warning(
            "System.AccessToken not available; enable OAuth token access to create work items"
        )
        return 0
    if not organization_url or not project:
        logger.warning("Could not determine the Azure DevOps organization or project")
        return 0

    min_severity = int_input(env, "workItemSeverities", 4)
    vulnerabilities = prepare_tickets(findings, min_severity, source)
    logger.info(
        "Found %d vulnerabilities at or above severity %d", len(vulnerabilities), min_severity
    )
    if not vulnerabilities:
        return 0

    factory = tracker_factory or _azure_boards
    tracker = factory(organization_url, project, token, env.get_input("workItemAreaPath"))
    try:
        outcome = await create_tickets(vulnerabilities, tracker)
    except Exception as exc:
        logger.warning("Failed to create work items: %s", exc)
        return 0
    finally:
        close = getattr(tracker, "aclose", None)
        if close is not None:
            await close()

    logger.info(
        "Work items created: %d, skipped (duplicates): %d, failed: %d",
        outcome.created,
        outcome.skipped,
        outcome.failed,
    )
    for error in outcome.errors:
        logger.warning("  - %s", error)
    return outcome.created


def finish(env: Environment, verdict: Verdict, success_message: str) -> None:
    env.set_variable("scanPassed", str(verdict.passed).lower())
    if verdict.passed:
        logger.info("SCAN PASSED")
        env.set_result(TaskResult.SUCCEEDED, success_message)
        return

    logger.error("SCAN FAILED")
    for reason in verdict.reasons:
        logger.error("  - %s", reason)
    message = "; ".join(verdict.reasons)
    if env.get_bool_input("continueOnError"):
        logger.warning("Continuing due to continueOnError=true")
        env.set_result(TaskResult.SUCCEEDED_WITH_ISSUES, message)
    else:
        env.set_result(TaskResult.FAILED, message)


@dataclass
class TaskHooks:
    """Injection points for the session, executor and ticket tracker."""

    prepare: SessionFactory = prepare_session
    executor: ExecutorFactory = ScanExecutor
    tracker: TrackerFactory | None = None


async def run_task(
    env: Environment,
    config: ScanConfiguration,
    work_dir: Path,
    build_request: Callable[[Environment], ScanRequest],
    source: str,
    success_message: str,
    hooks: TaskHooks | None = None,
    extra_outputs: Callable[[Environment, ExecutionResult], None] | None = None,
) -> Verdict | None:
    """
    Run one scan end to end and report the outcome through ``env``.

    ``extra_outputs`` may publish task-specific variables before the result
    is set. Returns None when the run aborted with an error (already reported).
    """
    hooks = hooks or TaskHooks()
    try:
        request = build_request(env)
        use_policy_evaluation = env.get_bool_input("usePolicyEvaluation")
        policy = threshold_policy_from(env)

        session = await hooks.prepare(config, work_dir)
        logger.info("Starting scan (mode %s)", request.mode)
        result = await hooks.executor(session).execute(request)

        summary, findings = Summary(), []
        if result.report_file is not None:
            summary, findings = parse_report(result.report_file)

        verdict = decide(result, summary, findings, policy, use_policy_evaluation)
        publish_summary(env, verdict.summary, result)
        if extra_outputs is not None:
            extra_outputs(env, result)
        if use_policy_evaluation:
            logger.info("Policy Evaluation Result: %s", result.policy_result)

        kept = [f for f in findings if f.qid is None or f.qid not in policy.excluded_qids]
        created = 0
        if result.report_file is not None:
            created = await file_tickets(env, kept, source, hooks.tracker)
        env.set_variable("workItemsCreated", str(created))

        finish(env, verdict, success_message)
        return verdict
    except Exception as exc:
        logger.error("Error: %s", exc)
        result_kind = (
            TaskResult.SUCCEEDED_WITH_ISSUES
            if env.get_bool_input("continueOnError")
            else TaskResult.FAILED
        )
        env.set_result(result_kind, str(exc))
        return None
