"""Tests for scanner argument construction and masking."""

from pathlib import Path

from qgate.modules.scanner import (
    AuthMethod,
    ImageTarget,
    RepoTarget,
    RootfsTarget,
    ScanConfiguration,
    ScanMode,
    ScanRequest,
    build_arguments,
    mask_arguments,
)
from qgate.modules.scanner.command import format_command


def image_request(**overrides) -> ScanRequest:
    values = {
        "target": ImageTarget(
            "nginx:latest", storage_driver="docker-overlay2", platform="linux/amd64"
        ),
        "output_dir": Path("/out"),
        "scan_types": ("os", "sca"),
        "formats": ("json", "spdx"),
        "report_formats": ("sarif", "table"),
        "timeout": 300,
        "log_level": "info",
    }
    values.update(overrides)
    return ScanRequest(**values)


class TestBuildArguments:
    def test_image_arguments_in_order(self, token_config: ScanConfiguration) -> None:
        args = build_arguments(token_config, image_request())

        assert args == [
            "--pod", "US1",
            "--mode", "get-report",
            "--scan-types", "os,sca",
            "--format", "json,spdx",
            "--report-format", "sarif,table",
            "--output-dir", "/out",
            "--scan-timeout", "300s",
            "--log-level", "info",
            "image", "nginx:latest",
            "--storage-driver", "docker-overlay2",
            "--platform", "linux/amd64",
        ]  # fmt: skip

    def test_token_is_never_an_argument(self, token_config: ScanConfiguration) -> None:
        args = build_arguments(token_config, image_request())

        assert "tok-123" not in " ".join(args)
        assert "--access-token" not in args

    def test_storage_driver_none_is_omitted(self, token_config: ScanConfiguration) -> None:
        request = image_request(target=ImageTarget("nginx:latest", storage_driver="none"))

        assert "--storage-driver" not in build_arguments(token_config, request)

    def test_policy_mode_with_tags(self, token_config: ScanConfiguration) -> None:
        request = image_request(mode=ScanMode.EVALUATE_POLICY, policy_tags=("prod", "pci"))
        args = build_arguments(token_config, request)

        assert args[args.index("--mode") + 1] == "evaluate-policy"
        assert args[args.index("--policy-tags") + 1] == "prod,pci"

    def test_tls_skip_and_proxy(self) -> None:
        config = ScanConfiguration(
            auth_method=AuthMethod.TOKEN,
            pod="EU1",
            access_token="t",
            proxy="http://proxy:3128",
            verify_tls=False,
        )
        args = build_arguments(config, image_request())

        assert "--skip-verify-tls=true" in args
        assert args[args.index("--proxy") + 1] == "http://proxy:3128"
        assert args.index("--proxy") < args.index("image")

    def test_repo_target_options(self, token_config: ScanConfiguration) -> None:
        target = RepoTarget(
            "/src", exclude_dirs=("node_modules", ".git"), exclude_files=("*.min.js",), offline=True
        )
        args = build_arguments(token_config, image_request(target=target))

        tail = args[args.index("repo") :]
        assert tail == [
            "repo", "/src",
            "--exclude-dirs", "node_modules,.git",
            "--exclude-files", "*.min.js",
            "--offline-scan=true",
        ]  # fmt: skip

    def test_rootfs_target(self, token_config: ScanConfiguration) -> None:
        target = RootfsTarget("/mnt/rootfs", exclude_dirs=("proc",))
        args = build_arguments(token_config, image_request(target=target))

        assert args[-4:] == ["rootfs", "/mnt/rootfs", "--exclude-dirs", "proc"]

    def test_optional_fields_omitted(self, token_config: ScanConfiguration) -> None:
        request = ScanRequest(target=ImageTarget("alpine"), output_dir=Path("/o"))

        assert build_arguments(token_config, request) == [
            "--pod", "US1", "--mode", "get-report", "--output-dir", "/o", "image", "alpine",
        ]  # fmt: skip


class TestMasking:
    def test_masks_value_after_secret_flag(self) -> None:
        args = ["qscanner", "--pod", "US1", "--access-token", "abc", "image", "x"]

        assert mask_arguments(args) == [
            "qscanner", "--pod", "US1", "--access-token", "***", "image", "x",
        ]  # fmt: skip

    def test_masks_inline_secret(self) -> None:
        assert mask_arguments(["--password=hunter2"]) == ["--password=***"]

    def test_leaves_other_arguments(self) -> None:
        args = ["--pod", "US1", "--proxy", "http://proxy"]
        assert mask_arguments(args) == args

    def test_format_command_masks_and_quotes(self) -> None:
        rendered = format_command(["qscanner", "--token", "abc", "repo", "my dir"])

        assert "abc" not in rendered
        assert "'my dir'" in rendered
