"""Scanner provisioning, authentication and execution."""

from .command import TOKEN_ENV_VAR, build_arguments, mask_arguments
from .credentials import POD_GATEWAY_URLS, CredentialResolver, gateway_url_for
from .executor import ScanExecutor, locate_artifacts, snapshot_files
from .models import (
    AuthMethod,
    ExecutionResult,
    ExitCode,
    ImageTarget,
    PolicyOutcome,
    RepoTarget,
    RootfsTarget,
    ScanConfiguration,
    ScanMode,
    ScanRequest,
    ScanTarget,
    describe_exit_code,
    policy_outcome_for,
)
from .provisioner import BinaryProvisioner, detect_platform
from .session import ScanSession, prepare_session

__all__ = [
    "AuthMethod",
    "BinaryProvisioner",
    "CredentialResolver",
    "ExecutionResult",
    "ExitCode",
    "ImageTarget",
    "POD_GATEWAY_URLS",
    "PolicyOutcome",
    "RepoTarget",
    "RootfsTarget",
    "ScanConfiguration",
    "ScanExecutor",
    "ScanMode",
    "ScanRequest",
    "ScanSession",
    "ScanTarget",
    "TOKEN_ENV_VAR",
    "build_arguments",
    "describe_exit_code",
    "detect_platform",
    "gateway_url_for",
    "locate_artifacts",
    "mask_arguments",
    "policy_outcome_for",
    "prepare_session",
    "snapshot_files",
]
