"""Error taxonomy for scan orchestration."""

from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable identifiers for orchestration failures."""

    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    UNSUPPORTED_PLATFORM = "UNSUPPORTED_PLATFORM"
    UNKNOWN_REGION = "UNKNOWN_REGION"
    INSECURE_URL = "INSECURE_URL"
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
    CHECKSUM_MISMATCH = "CHECKSUM_MISMATCH"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    AUTH_FAILED = "AUTH_FAILED"
    SPAWN_FAILED = "SPAWN_FAILED"
    SCAN_FAILED = "SCAN_FAILED"
    REPORT_NOT_FOUND = "REPORT_NOT_FOUND"
    REPORT_PARSE_ERROR = "REPORT_PARSE_ERROR"
    TRACKER_FAILED = "TRACKER_FAILED"


class QGateError(Exception):
    """Base class for all orchestration errors."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code

    def __str__(self) -> str:
        return f"[{self.code}] {self.args[0]}"


class ConfigurationError(QGateError):
    """Missing or inconsistent configuration. Never retried."""


class NetworkError(QGateError):
    """A remote call failed; may be retried depending on ``status_code``."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int | None = None,
        body: str = "",
    ):
        super().__init__(code, message)
        self.status_code = status_code
        self.body = body


class AuthenticationError(NetworkError):
    """The credential exchange was rejected."""


class IntegrityError(QGateError):
    """Downloaded content did not match its pinned digest."""


class ExecutionError(QGateError):
    """The scanner process could not be started or ran abnormally."""

    def __init__(self, code: ErrorCode, message: str, stderr: str = ""):
        super().__init__(code, message)
        self.stderr = stderr

    def stderr_tail(self, lines: int = 20) -> str:
        """The last ``lines`` lines of captured stderr."""
        return "\n".join(self.stderr.strip().splitlines()[-lines:])


class ParseError(QGateError):
    """A structured report could not be read."""
