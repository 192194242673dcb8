"""Command-line construction for the scanner executable."""

import shlex
from collections.abc import Iterable

from .models import ImageTarget, RepoTarget, RootfsTarget, ScanConfiguration, ScanRequest

TOKEN_ENV_VAR = "QUALYS_ACCESS_TOKEN"
SECRET_FLAGS = frozenset({"--access-token", "--token", "--password", "--client-secret"})
MASK = "***"


def _joined(values: Iterable[str]) -> str:
    return ",".join(values)


def build_arguments(config: ScanConfiguration, request: ScanRequest) -> list[str]:
    """Build the ordered argument vector (without the binary) for one scan."""
    args = ["--pod", config.pod, "--mode", str(request.mode)]

    if request.scan_types:
        args.extend(["--scan-types", _joined(request.scan_types)])
    if request.formats:
        args.extend(["--format", _joined(request.formats)])
    if request.report_formats:
        args.extend(["--report-format", _joined(request.report_formats)])
    args.extend(["--output-dir", str(request.output_dir)])
    if request.policy_tags:
        args.extend(["--policy-tags", _joined(request.policy_tags)])
    if request.timeout:
        args.extend(["--scan-timeout", f"{request.timeout}s"])
    if request.log_level:
        args.extend(["--log-level", request.log_level])
    if not config.verify_tls:
        args.append("--skip-verify-tls=true")
    if config.proxy:
        args.extend(["--proxy", config.proxy])

    target = request.target
    reference = target.image_id if isinstance(target, ImageTarget) else target.path
    args.extend([target.subcommand, reference])

    if isinstance(target, ImageTarget):
        if target.storage_driver and target.storage_driver != "none":
            args.extend(["--storage-driver", target.storage_driver])
        if target.platform:
            args.extend(["--platform", target.platform])
    elif isinstance(target, RepoTarget):
        if target.exclude_dirs:
            args.extend(["--exclude-dirs", _joined(target.exclude_dirs)])
        if target.exclude_files:
            args.extend(["--exclude-files", _joined(target.exclude_files)])
        if target.offline:
            args.append("--offline-scan=true")
    elif isinstance(target, RootfsTarget):
        if target.exclude_dirs:
            args.extend(["--exclude-dirs", _joined(target.exclude_dirs)])

    return args


def mask_arguments(args: list[str]) -> list[str]:
    """Replace the value following any secret-bearing flag with ``***``."""
    masked: list[str] = []
    for index, arg in enumerate(args):
        if index > 0 and args[index - 1] in SECRET_FLAGS:
            masked.append(MASK)
        elif "=" in arg and arg.split("=", 1)[0] in SECRET_FLAGS:
            masked.append(f"{arg.split('=', 1)[0]}={MASK}")
        else:
            masked.append(arg)
    return masked


def format_command(command: list[str]) -> str:
    """Shell-quoted, masked preview of a command for logging."""
    return " ".join(shlex.quote(part) for part in mask_arguments(command))
