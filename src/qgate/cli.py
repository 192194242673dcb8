"""qgate CLI - security gate around the Qualys QScanner."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from qgate.config import find_project_dir, get_log_level, get_work_dir, load_scan_configuration
from qgate.environment import AzurePipelinesEnvironment, CliEnvironment, TaskResult
from qgate.errors import QGateError
from qgate.modules.report import SEVERITY_LABELS, Summary, parse_report
from qgate.modules.scanner import ScanConfiguration
from qgate.modules.thresholds import ThresholdPolicy, evaluate
from qgate.tasks import run_container_scan, run_sca_scan
from qgate.utils.async_utils import safe_async_run

app = typer.Typer(
    name="qgate",
    help="Container and dependency security gate powered by Qualys QScanner",
    no_args_is_help=True,
)
console = Console()

# Pipeline variables forwarded from the process environment (used for work items)
PIPELINE_VARIABLES = (
    "System.AccessToken",
    "System.TeamFoundationCollectionUri",
    "System.TeamProject",
    "Agent.TempDirectory",
    "Build.SourcesDirectory",
)


@dataclass
class CliState:
    project_dir: Path | None = None
    connection: dict[str, Any] = field(default_factory=dict)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def pipeline_variables() -> dict[str, str]:
    variables = {}
    for name in PIPELINE_VARIABLES:
        value = os.environ.get(name.replace(".", "_").upper())
        if value:
            variables[name] = value
    return variables


@app.callback()
def root(
    ctx: typer.Context,
    pod: str | None = typer.Option(None, "--pod", help="Qualys pod/region (e.g. US1, EU2)"),
    auth_method: str | None = typer.Option(
        None, "--auth-method", help="Authentication method: token or credentials"
    ),
    access_token: str | None = typer.Option(
        None, "--access-token", help="Qualys access token (prefer QGATE_ACCESS_TOKEN)"
    ),
    username: str | None = typer.Option(None, "--username", help="Qualys username"),
    password: str | None = typer.Option(None, "--password", help="Qualys password"),
    proxy: str | None = typer.Option(None, "--proxy", help="Proxy URL for scanner traffic"),
    skip_tls_verify: bool = typer.Option(
        False, "--skip-tls-verify", help="Disable TLS certificate verification"
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level"),
) -> None:
    """Configure logging and connection settings shared by all commands."""
    project_dir = find_project_dir()
    configure_logging(log_level or get_log_level(project_dir))
    ctx.obj = CliState(
        project_dir=project_dir,
        connection={
            "pod": pod,
            "auth_method": auth_method,
            "access_token": access_token,
            "username": username,
            "password": password,
            "proxy": proxy,
            "skip_tls_verify": skip_tls_verify or None,
        },
    )


@app.command()
def version() -> None:
    """Show the installed qgate version."""
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as pkg_version

    try:
        current_version = pkg_version("qgate")
    except PackageNotFoundError:
        current_version = "0.0.0+unknown"

    console.print(f"qgate {current_version}")


def _load_config(ctx: typer.Context) -> tuple[ScanConfiguration, Path]:
    state: CliState = ctx.obj or CliState()
    try:
        config = load_scan_configuration(state.project_dir, **state.connection)
    except QGateError as exc:
        console.print(f"[red]Error: {escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc
    return config, get_work_dir(state.project_dir)


def _run(ctx: typer.Context, runner, inputs: dict[str, Any]) -> None:
    config, work_dir = _load_config(ctx)
    env = CliEnvironment(inputs=inputs, variables=pipeline_variables(), console=console)
    safe_async_run(runner(env, config, work_dir))

    for name, value in sorted(env.variables.items()):
        console.print(f"  [dim]{name}[/dim] = {escape(value)}")
    raise typer.Exit(env.exit_code)


@app.command("image")
def image(
    ctx: typer.Context,
    image_id: str = typer.Argument(..., help="Image id or reference to scan"),
    storage_driver: str = typer.Option(
        "none",
        "--storage-driver",
        help="Storage driver: none, docker-overlay2, containerd-overlayfs",
    ),
    platform: str | None = typer.Option(
        None, "--platform", help="Image platform, e.g. linux/amd64"
    ),
    policy: bool = typer.Option(False, "--policy", help="Use Qualys policy evaluation"),
    policy_tags: str | None = typer.Option(
        None, "--policy-tags", help="Comma-separated policy tags"
    ),
    fail_on_severity: int = typer.Option(
        4, "--fail-on-severity", help="Fail on severity >= N (1-5)"
    ),
    fail_on_cvss: float | None = typer.Option(None, "--fail-on-cvss", help="Fail on CVSS >= score"),
    fail_on_cves: str | None = typer.Option(None, "--fail-on-cves", help="Comma-separated CVE ids"),
    exclude_qids: str | None = typer.Option(None, "--exclude-qids", help="Comma-separated QIDs"),
    scan_types: str = typer.Option("os,sca", "--scan-types", help="Comma-separated scan types"),
    timeout: int = typer.Option(300, "--timeout", "-t", help="Scan timeout in seconds"),
    output_dir: Path | None = typer.Option(None, "--output-dir", "-o", help="Result directory"),
    continue_on_error: bool = typer.Option(
        False, "--continue-on-error", help="Report failures without failing the run"
    ),
) -> None:
    """Scan a container image."""
    _run(
        ctx,
        run_container_scan,
        {
            "imageId": image_id,
            "storageDriver": storage_driver,
            "platform": platform,
            "usePolicyEvaluation": policy,
            "policyTags": policy_tags,
            "failOnSeverity": fail_on_severity,
            "failOnCvss": fail_on_cvss,
            "failOnCves": fail_on_cves,
            "excludeQids": exclude_qids,
            "scanTypes": scan_types,
            "scanTimeout": timeout,
            "outputDir": output_dir,
            "continueOnError": continue_on_error,
        },
    )


def _sca_inputs(
    path: Path,
    rootfs: bool,
    exclude_dirs: str | None,
    secrets: bool,
    sbom: str | None,
    policy: bool,
    policy_tags: str | None,
    fail_on_severity: int,
    fail_on_cvss: float | None,
    fail_on_cves: str | None,
    fail_on_licenses: str | None,
    exclude_qids: str | None,
    work_items: bool,
    work_item_severity: int,
    area_path: str | None,
    timeout: int,
    output_dir: Path | None,
    continue_on_error: bool,
) -> dict[str, Any]:
    return {
        "scanPath": str(path),
        "scanRootfs": rootfs,
        "excludeDirs": exclude_dirs,
        "scanSecrets": secrets,
        "generateSbom": bool(sbom),
        "sbomFormat": sbom,
        "usePolicyEvaluation": policy,
        "policyTags": policy_tags,
        "failOnSeverity": fail_on_severity,
        "failOnCvss": fail_on_cvss,
        "failOnCves": fail_on_cves,
        "failOnLicenses": fail_on_licenses,
        "excludeQids": exclude_qids,
        "createWorkItems": work_items,
        "workItemSeverities": work_item_severity,
        "workItemAreaPath": area_path,
        "scanTimeout": timeout,
        "outputDir": output_dir,
        "continueOnError": continue_on_error,
    }


@app.command("repo")
def repo(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("."), help="Source tree to scan"),
    exclude_dirs: str | None = typer.Option(None, "--exclude-dirs", help="Comma-separated dirs"),
    exclude_files: str | None = typer.Option(None, "--exclude-files", help="Comma-separated files"),
    offline: bool = typer.Option(False, "--offline", help="Scan without network lookups"),
    secrets: bool = typer.Option(False, "--secrets", help="Also scan for secrets"),
    sbom: str | None = typer.Option(None, "--sbom", help="Generate SBOM: spdx, cyclonedx or both"),
    policy: bool = typer.Option(False, "--policy", help="Use Qualys policy evaluation"),
    policy_tags: str | None = typer.Option(
        None, "--policy-tags", help="Comma-separated policy tags"
    ),
    fail_on_severity: int = typer.Option(
        4, "--fail-on-severity", help="Fail on severity >= N (1-5)"
    ),
    fail_on_cvss: float | None = typer.Option(None, "--fail-on-cvss", help="Fail on CVSS >= score"),
    fail_on_cves: str | None = typer.Option(None, "--fail-on-cves", help="Comma-separated CVE ids"),
    fail_on_licenses: str | None = typer.Option(
        None, "--fail-on-licenses", help="Comma-separated license ids"
    ),
    exclude_qids: str | None = typer.Option(None, "--exclude-qids", help="Comma-separated QIDs"),
    work_items: bool = typer.Option(False, "--work-items", help="Create Azure Boards work items"),
    work_item_severity: int = typer.Option(
        4, "--work-item-severity", help="Minimum severity for work items"
    ),
    area_path: str | None = typer.Option(None, "--area-path", help="Work item area path"),
    timeout: int = typer.Option(300, "--timeout", "-t", help="Scan timeout in seconds"),
    output_dir: Path | None = typer.Option(None, "--output-dir", "-o", help="Result directory"),
    continue_on_error: bool = typer.Option(
        False, "--continue-on-error", help="Report failures without failing the run"
    ),
) -> None:
    """Scan a source tree's dependencies."""
    if sbom == "both":
        sbom = "spdx,cyclonedx"
    inputs = _sca_inputs(
        path,
        False,
        exclude_dirs,
        secrets,
        sbom,
        policy,
        policy_tags,
        fail_on_severity,
        fail_on_cvss,
        fail_on_cves,
        fail_on_licenses,
        exclude_qids,
        work_items,
        work_item_severity,
        area_path,
        timeout,
        output_dir,
        continue_on_error,
    )
    inputs["excludeFiles"] = exclude_files
    inputs["offlineScan"] = offline
    _run(ctx, run_sca_scan, inputs)


@app.command("rootfs")
def rootfs(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Unpacked root filesystem to scan"),
    exclude_dirs: str | None = typer.Option(None, "--exclude-dirs", help="Comma-separated dirs"),
    secrets: bool = typer.Option(False, "--secrets", help="Also scan for secrets"),
    sbom: str | None = typer.Option(None, "--sbom", help="Generate SBOM: spdx, cyclonedx or both"),
    policy: bool = typer.Option(False, "--policy", help="Use Qualys policy evaluation"),
    policy_tags: str | None = typer.Option(
        None, "--policy-tags", help="Comma-separated policy tags"
    ),
    fail_on_severity: int = typer.Option(
        4, "--fail-on-severity", help="Fail on severity >= N (1-5)"
    ),
    fail_on_cvss: float | None = typer.Option(None, "--fail-on-cvss", help="Fail on CVSS >= score"),
    fail_on_cves: str | None = typer.Option(None, "--fail-on-cves", help="Comma-separated CVE ids"),
    fail_on_licenses: str | None = typer.Option(
        None, "--fail-on-licenses", help="Comma-separated license ids"
    ),
    exclude_qids: str | None = typer.Option(None, "--exclude-qids", help="Comma-separated QIDs"),
    timeout: int = typer.Option(300, "--timeout", "-t", help="Scan timeout in seconds"),
    output_dir: Path | None = typer.Option(None, "--output-dir", "-o", help="Result directory"),
    continue_on_error: bool = typer.Option(
        False, "--continue-on-error", help="Report failures without failing the run"
    ),
) -> None:
    """Scan an unpacked root filesystem."""
    if sbom == "both":
        sbom = "spdx,cyclonedx"
    inputs = _sca_inputs(
        path,
        True,
        exclude_dirs,
        secrets,
        sbom,
        policy,
        policy_tags,
        fail_on_severity,
        fail_on_cvss,
        fail_on_cves,
        fail_on_licenses,
        exclude_qids,
        False,
        4,
        None,
        timeout,
        output_dir,
        continue_on_error,
    )
    _run(ctx, run_sca_scan, inputs)


@app.command("pipeline")
def pipeline(
    ctx: typer.Context,
    task: str = typer.Argument(..., help="Task to run: container or sca"),
) -> None:
    """Run a scan task inside Azure Pipelines (inputs from INPUT_* variables)."""
    runners = {"container": run_container_scan, "sca": run_sca_scan}
    if task not in runners:
        console.print(f"[red]Unknown task: {escape(task)}. Use container or sca.[/red]")
        raise typer.Exit(2)

    config, work_dir = _load_config(ctx)
    env = AzurePipelinesEnvironment()
    safe_async_run(runners[task](env, config, work_dir))
    raise typer.Exit(1 if env.result is TaskResult.FAILED else 0)


def _summary_table(summary: Summary) -> Table:
    table = Table(title="Vulnerability Summary")
    table.add_column("Severity")
    table.add_column("Count", justify="right")
    for level in (5, 4, 3, 2, 1):
        table.add_row(SEVERITY_LABELS[level], str(summary.count_for(level)))
    table.add_row("[bold]Total[/bold]", f"[bold]{summary.total}[/bold]")
    return table


@app.command("evaluate")
def evaluate_report(
    report: Path = typer.Argument(..., help="SARIF report to evaluate"),
    fail_on_severity: int = typer.Option(
        4, "--fail-on-severity", help="Fail on severity >= N (1-5)"
    ),
    fail_on_cvss: float | None = typer.Option(None, "--fail-on-cvss", help="Fail on CVSS >= score"),
    fail_on_cves: str | None = typer.Option(None, "--fail-on-cves", help="Comma-separated CVE ids"),
    fail_on_licenses: str | None = typer.Option(
        None, "--fail-on-licenses", help="Comma-separated license ids"
    ),
    exclude_qids: str | None = typer.Option(None, "--exclude-qids", help="Comma-separated QIDs"),
) -> None:
    """Evaluate thresholds against an existing SARIF report."""
    try:
        parsed = parse_report(report)
    except QGateError as exc:
        console.print(f"[red]Error: {escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc

    policy = ThresholdPolicy.from_inputs(
        fail_on_severity=fail_on_severity,
        fail_on_cvss=fail_on_cvss,
        fail_on_cves=fail_on_cves,
        fail_on_licenses=fail_on_licenses,
        exclude_qids=exclude_qids,
    )
    verdict = evaluate(parsed.summary, parsed.findings, policy)
    console.print(_summary_table(verdict.summary))

    if verdict.passed:
        console.print("[green]PASSED[/green]")
        return
    console.print("[red]FAILED[/red]")
    for reason in verdict.reasons:
        console.print(f"  [red]- {escape(reason)}[/red]")
    raise typer.Exit(1)


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
