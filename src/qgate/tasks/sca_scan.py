"""Software composition analysis scan task (source trees and root filesystems)."""

import logging
import os
from pathlib import Path

from qgate.environment import Environment
from qgate.modules.scanner import (
    ExecutionResult,
    RepoTarget,
    RootfsTarget,
    ScanConfiguration,
    ScanMode,
    ScanRequest,
    ScanTarget,
)
from qgate.modules.thresholds import Verdict

from .common import (
    DEFAULT_SCAN_TIMEOUT,
    TaskHooks,
    int_input,
    resolve_output_dir,
    run_task,
    split_input,
)

logger = logging.getLogger(__name__)

OUTPUT_FOLDER = "qgate-sca-results"
SBOM_FORMATS = ("spdx", "cyclonedx")


def sbom_formats(env: Environment) -> tuple[str, ...]:
    """Requested SBOM formats, in canonical order; empty when disabled."""
    if not env.get_bool_input("generateSbom"):
        return ()
    requested = split_input(env.get_input("sbomFormat") or "spdx")
    return tuple(fmt for fmt in SBOM_FORMATS if fmt in requested)


def build_sca_request(env: Environment) -> ScanRequest:
    """Translate SCA task inputs into a scan request."""
    scan_path = env.get_input("scanPath") or env.get_variable("Build.SourcesDirectory")
    if not scan_path:
        scan_path = os.getcwd()
    use_policy = env.get_bool_input("usePolicyEvaluation")
    exclude_dirs = split_input(env.get_input("excludeDirs"))

    target: ScanTarget
    if env.get_bool_input("scanRootfs"):
        target = RootfsTarget(path=scan_path, exclude_dirs=exclude_dirs)
    else:
        target = RepoTarget(
            path=scan_path,
            exclude_dirs=exclude_dirs,
            exclude_files=split_input(env.get_input("excludeFiles")),
            offline=env.get_bool_input("offlineScan"),
        )

    scan_types = ["pkg"]
    if env.get_bool_input("scanSecrets"):
        scan_types.append("secret")

    logger.info("Scan Path: %s", scan_path)
    logger.info("Policy Evaluation: %s", use_policy)
    logger.info("Scan Types: %s", ",".join(scan_types))

    return ScanRequest(
        target=target,
        output_dir=resolve_output_dir(env, OUTPUT_FOLDER),
        mode=ScanMode.EVALUATE_POLICY if use_policy else ScanMode.GET_REPORT,
        scan_types=tuple(scan_types),
        formats=("json", *sbom_formats(env)),
        report_formats=("sarif", "table"),
        policy_tags=split_input(env.get_input("policyTags")) if use_policy else (),
        timeout=int_input(env, "scanTimeout", DEFAULT_SCAN_TIMEOUT),
        log_level="info",
    )


def publish_sbom_path(env: Environment, result: ExecutionResult) -> None:
    sbom_path = ";".join(str(path) for path in result.sbom_files) if sbom_formats(env) else ""
    env.set_variable("sbomPath", sbom_path)
    if sbom_path:
        logger.info("SBOM generated: %s", sbom_path)


async def run_sca_scan(
    env: Environment,
    config: ScanConfiguration,
    work_dir: Path,
    hooks: TaskHooks | None = None,
) -> Verdict | None:
    """Scan dependencies of a source tree or root filesystem and gate the run."""
    logger.info("Qualys SCA Dependency Scan (pod %s)", config.pod)
    return await run_task(
        env,
        config,
        work_dir,
        build_sca_request,
        source="sca",
        success_message="SCA scan completed successfully",
        hooks=hooks,
        extra_outputs=publish_sbom_path,
    )
