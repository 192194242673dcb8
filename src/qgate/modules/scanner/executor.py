"""Run the scanner binary and collect what it produced."""

from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path

from .command import TOKEN_ENV_VAR, build_arguments, format_command
from .models import ExecutionResult, ScanRequest, describe_exit_code, policy_outcome_for
from .runtime import CommandResult, stream_command
from .session import ScanSession

logger = logging.getLogger(__name__)

SCAN_RESULT_SUFFIX = "-ScanResult.json"
REPORT_SUFFIX = "-Report.sarif.json"
SBOM_SUFFIXES = (".spdx.json", ".cdx.json")

CommandRunner = Callable[..., Awaitable[CommandResult]]


def _is_sbom(name: str) -> bool:
    return name.endswith(SBOM_SUFFIXES) or "cyclonedx" in name.lower()


def snapshot_files(output_dir: Path) -> dict[str, int]:
    """Map each file directly inside ``output_dir`` to its modification time (ns)."""
    if not output_dir.is_dir():
        return {}
    return {
        entry.name: entry.stat().st_mtime_ns for entry in output_dir.iterdir() if entry.is_file()
    }


def locate_artifacts(
    output_dir: Path,
    previous: Mapping[str, int] | None = None,
) -> tuple[Path | None, Path | None, tuple[Path, ...]]:
    """
    Find result files directly inside ``output_dir``.

    Args:
        output_dir: Directory the scanner wrote to
        previous: Snapshot taken before the run; files it lists with an
            unchanged modification time are left over from earlier runs

    Returns:
        (scan result JSON, SARIF report, SBOM files); missing entries are None/empty
    """
    scan_result: Path | None = None
    report: Path | None = None
    sboms: list[Path] = []
    if not output_dir.is_dir():
        return None, None, ()
    previous = previous or {}
    for entry in sorted(output_dir.iterdir()):
        if not entry.is_file():
            continue
        if previous.get(entry.name) == entry.stat().st_mtime_ns:
            logger.debug("Ignoring stale artifact %s", entry)
            continue
        if entry.name.endswith(SCAN_RESULT_SUFFIX):
            scan_result = entry
        elif entry.name.endswith(REPORT_SUFFIX):
            report = entry
        elif _is_sbom(entry.name):
            sboms.append(entry)
    return scan_result, report, tuple(sboms)


class ScanExecutor:
    """Execute scan requests against a prepared session."""

    def __init__(
        self,
        session: ScanSession,
        runner: CommandRunner | None = None,
        echo: bool = True,
    ):
        self.session = session
        self._runner = runner or stream_command
        self.echo = echo

    def _child_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env[TOKEN_ENV_VAR] = self.session.access_token
        return env

    async def execute(self, request: ScanRequest) -> ExecutionResult:
        output_dir = Path(request.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        command = [str(self.session.binary_path), *build_arguments(self.session.config, request)]
        logger.info("Executing: %s", format_command(command))

        existing = snapshot_files(output_dir)
        result = await self._runner(command, env=self._child_env(), echo=self.echo)

        policy_result = policy_outcome_for(result.returncode)
        scan_result_file, report_file, sbom_files = locate_artifacts(output_dir, existing)
        logger.info(
            "QScanner exited with code %d (%s) in %.1fs; policy result %s",
            result.returncode,
            describe_exit_code(result.returncode),
            result.elapsed,
            policy_result,
        )
        if report_file is None:
            logger.debug("No SARIF report found in %s", output_dir)

        return ExecutionResult(
            exit_code=result.returncode,
            policy_result=policy_result,
            output_dir=output_dir,
            scan_result_file=scan_result_file,
            report_file=report_file,
            sbom_files=sbom_files,
            stdout=result.stdout,
            stderr=result.stderr,
        )
