"""Data models for scanner configuration, requests and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from pathlib import Path

from qgate.errors import ConfigurationError, ErrorCode, ExecutionError


class AuthMethod(StrEnum):
    TOKEN = "token"
    CREDENTIALS = "credentials"

    @classmethod
    def parse(cls, value: str) -> AuthMethod:
        """Parse a user-supplied auth method, accepting ``access-token``."""
        normalized = (value or "").strip().lower()
        if normalized in ("token", "access-token", "access_token"):
            return cls.TOKEN
        if normalized in ("credentials", "username-password", "usernamepassword"):
            return cls.CREDENTIALS
        raise ConfigurationError(
            ErrorCode.INVALID_CONFIGURATION,
            f"Unknown authentication method: {value!r}. Use 'token' or 'credentials'.",
        )


class ScanMode(StrEnum):
    INVENTORY_ONLY = "inventory-only"
    SCAN_ONLY = "scan-only"
    GET_REPORT = "get-report"
    EVALUATE_POLICY = "evaluate-policy"


class PolicyOutcome(StrEnum):
    ALLOW = "ALLOW"
    DENY = "DENY"
    AUDIT = "AUDIT"
    NONE = "NONE"


class ExitCode(IntEnum):
    """QScanner process exit codes."""

    SUCCESS = 0
    GENERIC_ERROR = 1
    INVALID_PARAMETER = 2
    LOGGER_INIT_FAILED = 3
    FILESYSTEM_ARTIFACT_FAILED = 5
    IMAGE_ARTIFACT_FAILED = 6
    IMAGE_ARCHIVE_ARTIFACT_FAILED = 7
    IMAGE_STORAGE_DRIVER_ARTIFACT_FAILED = 8
    CONTAINER_ARTIFACT_FAILED = 9
    OTHER_ARTIFACT_FAILED = 10
    METADATA_SCAN_FAILED = 11
    OS_SCAN_FAILED = 12
    SCA_SCAN_FAILED = 13
    SECRET_SCAN_FAILED = 14
    OS_NOT_FOUND = 15
    MALWARE_SCAN_FAILED = 16
    OS_NOT_SUPPORTED = 17
    FILE_INSIGHT_SCAN_FAILED = 18
    COMPLIANCE_SCAN_FAILED = 19
    MANIFEST_SCAN_FAILED = 20
    WINREGISTRY_SCAN_FAILED = 21
    JSON_RESULT_HANDLER_FAILED = 30
    CHANGELIST_CREATION_FAILED = 31
    CHANGELIST_COMPRESSION_FAILED = 32
    CHANGELIST_UPLOAD_FAILED = 33
    SPDX_HANDLER_FAILED = 34
    CDX_HANDLER_FAILED = 35
    SBOM_COMPRESSION_FAILED = 36
    SBOM_UPLOAD_FAILED = 37
    SECRET_RESULT_CREATION_FAILED = 38
    SECRET_RESULT_UPLOAD_FAILED = 39
    FAILED_TO_GET_VULN_REPORT = 40
    FAILED_TO_GET_POLICY_EVALUATION_RESULT = 41
    POLICY_EVALUATION_DENY = 42
    POLICY_EVALUATION_AUDIT = 43


POLICY_EXIT_CODES = frozenset(
    {ExitCode.SUCCESS, ExitCode.POLICY_EVALUATION_DENY, ExitCode.POLICY_EVALUATION_AUDIT}
)


def policy_outcome_for(exit_code: int) -> PolicyOutcome:
    """Map a process exit code to the policy outcome it encodes."""
    if exit_code == ExitCode.SUCCESS:
        return PolicyOutcome.ALLOW
    if exit_code == ExitCode.POLICY_EVALUATION_DENY:
        return PolicyOutcome.DENY
    if exit_code == ExitCode.POLICY_EVALUATION_AUDIT:
        return PolicyOutcome.AUDIT
    return PolicyOutcome.NONE


def describe_exit_code(exit_code: int) -> str:
    """Return the symbolic name of a known exit code, or ``UNKNOWN``."""
    try:
        return ExitCode(exit_code).name
    except ValueError:
        return "UNKNOWN"


@dataclass
class ScanConfiguration:
    """Connection settings for the remote scanning service."""

    auth_method: AuthMethod
    pod: str
    access_token: str | None = field(default=None, repr=False)
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    proxy: str | None = None
    verify_tls: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.auth_method, AuthMethod):
            self.auth_method = AuthMethod.parse(str(self.auth_method))
        if not (self.pod or "").strip():
            raise ConfigurationError(ErrorCode.INVALID_CONFIGURATION, "A pod/region is required")
        if self.auth_method is AuthMethod.TOKEN:
            if not self.access_token:
                raise ConfigurationError(
                    ErrorCode.INVALID_CONFIGURATION,
                    "Access token is required when using token authentication",
                )
        elif not self.username or not self.password:
            raise ConfigurationError(
                ErrorCode.INVALID_CONFIGURATION,
                "Username and password are required when using credentials authentication",
            )


@dataclass(frozen=True)
class ImageTarget:
    """A container image, addressed by id or reference."""

    image_id: str
    storage_driver: str | None = None
    platform: str | None = None

    subcommand = "image"


@dataclass(frozen=True)
class RepoTarget:
    """A source tree scanned for dependencies and secrets."""

    path: str
    exclude_dirs: tuple[str, ...] = ()
    exclude_files: tuple[str, ...] = ()
    offline: bool = False

    subcommand = "repo"


@dataclass(frozen=True)
class RootfsTarget:
    """An unpacked root filesystem."""

    path: str
    exclude_dirs: tuple[str, ...] = ()

    subcommand = "rootfs"


ScanTarget = ImageTarget | RepoTarget | RootfsTarget


@dataclass(frozen=True)
class ScanRequest:
    """Everything needed for one scanner invocation."""

    target: ScanTarget
    output_dir: Path
    mode: ScanMode = ScanMode.GET_REPORT
    scan_types: tuple[str, ...] = ()
    formats: tuple[str, ...] = ()
    report_formats: tuple[str, ...] = ()
    policy_tags: tuple[str, ...] = ()
    timeout: int | None = None
    log_level: str | None = None


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one scanner subprocess run."""

    exit_code: int
    policy_result: PolicyOutcome
    output_dir: Path
    scan_result_file: Path | None = None
    report_file: Path | None = None
    sbom_files: tuple[Path, ...] = ()
    stdout: str = ""
    stderr: str = field(default="", repr=False)

    @property
    def success(self) -> bool:
        return self.exit_code == ExitCode.SUCCESS

    @property
    def execution_failed(self) -> bool:
        """True when the exit code is neither success nor a policy decision."""
        return self.exit_code not in POLICY_EXIT_CODES

    def execution_error(self) -> ExecutionError | None:
        """The error for an exit code that is neither success nor a policy decision."""
        if not self.execution_failed:
            return None
        return ExecutionError(
            ErrorCode.SCAN_FAILED,
            f"QScanner exited with code {self.exit_code} ({describe_exit_code(self.exit_code)})",
            stderr=self.stderr,
        )
