"""Container image scan task."""

import logging
from pathlib import Path

from qgate.environment import Environment
from qgate.modules.scanner import ImageTarget, ScanConfiguration, ScanMode, ScanRequest
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

OUTPUT_FOLDER = "qgate-scan-results"
DEFAULT_SCAN_TYPES = "os,sca"


def build_container_request(env: Environment) -> ScanRequest:
    """Translate container task inputs into a scan request."""
    image_id = env.get_input("imageId", required=True)
    use_policy = env.get_bool_input("usePolicyEvaluation")
    scan_types = split_input(env.get_input("scanTypes") or DEFAULT_SCAN_TYPES)

    logger.info("Image: %s", image_id)
    logger.info("Policy Evaluation: %s", use_policy)
    logger.info("Scan Types: %s", ",".join(scan_types))

    return ScanRequest(
        target=ImageTarget(
            image_id=image_id,
            storage_driver=env.get_input("storageDriver") or "none",
            platform=env.get_input("platform"),
        ),
        output_dir=resolve_output_dir(env, OUTPUT_FOLDER),
        mode=ScanMode.EVALUATE_POLICY if use_policy else ScanMode.GET_REPORT,
        scan_types=scan_types,
        formats=("json", "spdx"),
        report_formats=("sarif", "table"),
        policy_tags=split_input(env.get_input("policyTags")) if use_policy else (),
        timeout=int_input(env, "scanTimeout", DEFAULT_SCAN_TIMEOUT),
        log_level="info",
    )


async def run_container_scan(
    env: Environment,
    config: ScanConfiguration,
    work_dir: Path,
    hooks: TaskHooks | None = None,
) -> Verdict | None:
    """Scan a container image and gate the run on the outcome."""
    logger.info("Qualys Container Security Scan (pod %s)", config.pod)
    return await run_task(
        env,
        config,
        work_dir,
        build_container_request,
        source="container",
        success_message="Container scan completed successfully",
        hooks=hooks,
    )
