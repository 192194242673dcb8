"""Tests for running the scanner process and collecting its artifacts."""

import io
import json
import sys
from pathlib import Path

import pytest

from conftest import sarif_document
from qgate.errors import ErrorCode, ExecutionError
from qgate.modules.scanner import (
    ImageTarget,
    PolicyOutcome,
    ScanExecutor,
    ScanRequest,
    ScanSession,
    describe_exit_code,
    locate_artifacts,
    policy_outcome_for,
    snapshot_files,
)
from qgate.modules.scanner.runtime import CommandResult, stream_command


def request_for(output_dir: Path) -> ScanRequest:
    return ScanRequest(target=ImageTarget("nginx:latest"), output_dir=output_dir)


class TestExitCodes:
    def test_policy_outcomes(self) -> None:
        assert policy_outcome_for(0) is PolicyOutcome.ALLOW
        assert policy_outcome_for(42) is PolicyOutcome.DENY
        assert policy_outcome_for(43) is PolicyOutcome.AUDIT
        assert policy_outcome_for(1) is PolicyOutcome.NONE

    def test_describe_exit_code(self) -> None:
        assert describe_exit_code(40) == "FAILED_TO_GET_VULN_REPORT"
        assert describe_exit_code(99) == "UNKNOWN"


class TestLocateArtifacts:
    def test_matches_suffixes_non_recursively(self, temp_dir: Path) -> None:
        (temp_dir / "img-ScanResult.json").write_text("{}")
        (temp_dir / "img-Report.sarif.json").write_text("{}")
        (temp_dir / "img.spdx.json").write_text("{}")
        (temp_dir / "img-cyclonedx.json").write_text("{}")
        nested = temp_dir / "nested"
        nested.mkdir()
        (nested / "other-Report.sarif.json").write_text("{}")

        scan_result, report, sboms = locate_artifacts(temp_dir)

        assert scan_result == temp_dir / "img-ScanResult.json"
        assert report == temp_dir / "img-Report.sarif.json"
        assert [p.name for p in sboms] == ["img-cyclonedx.json", "img.spdx.json"]

    def test_missing_directory(self, temp_dir: Path) -> None:
        assert locate_artifacts(temp_dir / "absent") == (None, None, ())

    def test_skips_files_unchanged_since_snapshot(self, temp_dir: Path) -> None:
        stale = temp_dir / "zzz-Report.sarif.json"
        stale.write_text("{}")
        previous = snapshot_files(temp_dir)
        (temp_dir / "aaa-Report.sarif.json").write_text("{}")

        _, report, _ = locate_artifacts(temp_dir, previous)

        assert report == temp_dir / "aaa-Report.sarif.json"


class TestScanExecutor:
    @pytest.mark.asyncio
    async def test_success_maps_to_allow_and_finds_report(
        self, scan_session: ScanSession, temp_dir: Path, monkeypatch
    ) -> None:
        monkeypatch.setenv("FAKE_QSCANNER_REPORT", json.dumps(sarif_document([])))
        monkeypatch.setenv("FAKE_QSCANNER_SBOM", "1")
        out = temp_dir / "results"

        result = await ScanExecutor(scan_session, echo=False).execute(request_for(out))

        assert result.exit_code == 0
        assert result.success
        assert result.policy_result is PolicyOutcome.ALLOW
        assert result.report_file == out / "image-Report.sarif.json"
        assert result.scan_result_file == out / "image-ScanResult.json"
        assert result.sbom_files == (out / "image.spdx.json",)
        assert "scan complete" in result.stdout

    @pytest.mark.asyncio
    async def test_stale_report_from_earlier_run_is_ignored(
        self, scan_session: ScanSession, temp_dir: Path, monkeypatch
    ) -> None:
        out = temp_dir / "results"
        out.mkdir()
        (out / "zzz-Report.sarif.json").write_text(json.dumps(sarif_document([])))
        monkeypatch.setenv("FAKE_QSCANNER_REPORT", json.dumps(sarif_document([])))

        result = await ScanExecutor(scan_session, echo=False).execute(request_for(out))

        assert result.report_file == out / "image-Report.sarif.json"

    @pytest.mark.asyncio
    async def test_only_stale_report_counts_as_missing(
        self, scan_session: ScanSession, temp_dir: Path
    ) -> None:
        out = temp_dir / "results"
        out.mkdir()
        (out / "zzz-Report.sarif.json").write_text(json.dumps(sarif_document([])))

        result = await ScanExecutor(scan_session, echo=False).execute(request_for(out))

        assert result.report_file is None

    @pytest.mark.asyncio
    async def test_token_passed_through_environment_only(
        self, scan_session: ScanSession, temp_dir: Path
    ) -> None:
        out = temp_dir / "results"

        await ScanExecutor(scan_session, echo=False).execute(request_for(out))

        assert (out / "token.txt").read_text() == "tok-123"
        assert "tok-123" not in (out / "argv.txt").read_text()

    @pytest.mark.asyncio
    async def test_policy_deny_exit_code(
        self, scan_session: ScanSession, temp_dir: Path, monkeypatch
    ) -> None:
        monkeypatch.setenv("FAKE_QSCANNER_EXIT", "42")

        result = await ScanExecutor(scan_session, echo=False).execute(request_for(temp_dir / "o"))

        assert result.success is False
        assert result.policy_result is PolicyOutcome.DENY
        assert result.execution_failed is False

    @pytest.mark.asyncio
    async def test_other_exit_codes_are_execution_failures(
        self, scan_session: ScanSession, temp_dir: Path, monkeypatch
    ) -> None:
        monkeypatch.setenv("FAKE_QSCANNER_EXIT", "40")

        result = await ScanExecutor(scan_session, echo=False).execute(request_for(temp_dir / "o"))

        assert result.policy_result is PolicyOutcome.NONE
        assert result.execution_failed is True
        assert result.report_file is None

    @pytest.mark.asyncio
    async def test_large_output_does_not_deadlock(
        self, scan_session: ScanSession, temp_dir: Path, monkeypatch
    ) -> None:
        monkeypatch.setenv("FAKE_QSCANNER_BYTES", str(1024 * 1024))

        result = await ScanExecutor(scan_session, echo=False).execute(request_for(temp_dir / "o"))

        assert result.exit_code == 0
        assert len(result.stdout) > 1024 * 1024
        assert len(result.stderr) == 1024 * 1024

    @pytest.mark.asyncio
    async def test_missing_binary_is_spawn_failure(
        self, scan_session: ScanSession, temp_dir: Path
    ) -> None:
        session = ScanSession(
            config=scan_session.config,
            work_dir=temp_dir,
            binary_path=temp_dir / "does-not-exist",
            access_token="tok-123",
        )

        with pytest.raises(ExecutionError) as exc_info:
            await ScanExecutor(session, echo=False).execute(request_for(temp_dir / "o"))

        assert exc_info.value.code == ErrorCode.SPAWN_FAILED

    @pytest.mark.asyncio
    async def test_custom_runner_receives_token_env(
        self, scan_session: ScanSession, temp_dir: Path
    ) -> None:
        seen = {}

        async def runner(command, env=None, echo=True):
            seen["command"] = command
            seen["env"] = env
            return CommandResult(command=command, returncode=43, stdout="", stderr="")

        result = await ScanExecutor(scan_session, runner=runner).execute(
            request_for(temp_dir / "o")
        )

        assert result.policy_result is PolicyOutcome.AUDIT
        assert seen["env"]["QUALYS_ACCESS_TOKEN"] == "tok-123"
        assert seen["command"][0] == str(scan_session.binary_path)

    @pytest.mark.asyncio
    async def test_unexpected_exit_code_carries_stderr(
        self, scan_session: ScanSession, temp_dir: Path
    ) -> None:
        async def runner(command, env=None, echo=True):
            stderr = "fetching report\nlicense expired\n"
            return CommandResult(command=command, returncode=40, stdout="", stderr=stderr)

        result = await ScanExecutor(scan_session, runner=runner).execute(
            request_for(temp_dir / "o")
        )
        error = result.execution_error()

        assert isinstance(error, ExecutionError)
        assert error.code == ErrorCode.SCAN_FAILED
        assert error.args[0] == "QScanner exited with code 40 (FAILED_TO_GET_VULN_REPORT)"
        assert error.stderr_tail(1) == "license expired"

    @pytest.mark.asyncio
    async def test_policy_exit_codes_are_not_execution_errors(
        self, scan_session: ScanSession, temp_dir: Path, monkeypatch
    ) -> None:
        monkeypatch.setenv("FAKE_QSCANNER_EXIT", "42")

        result = await ScanExecutor(scan_session, echo=False).execute(request_for(temp_dir / "o"))

        assert result.execution_error() is None


class TestStreamCommand:
    @pytest.mark.asyncio
    async def test_tees_output_to_sinks(self) -> None:
        out, err = io.StringIO(), io.StringIO()
        code = "import sys; print('hello'); print('oops', file=sys.stderr); sys.exit(3)"

        result = await stream_command(
            [sys.executable, "-c", code], stdout_sink=out, stderr_sink=err
        )

        assert result.returncode == 3
        assert result.stdout.strip() == "hello"
        assert result.stderr.strip() == "oops"
        assert out.getvalue() == result.stdout
        assert err.getvalue() == result.stderr

    @pytest.mark.asyncio
    async def test_echo_disabled_writes_nothing(self) -> None:
        out = io.StringIO()

        result = await stream_command(
            [sys.executable, "-c", "print('quiet')"], echo=False, stdout_sink=out
        )

        assert result.stdout.strip() == "quiet"
        assert out.getvalue() == ""

    @pytest.mark.asyncio
    async def test_multibyte_output_is_decoded(self) -> None:
        code = "import sys; sys.stdout.buffer.write('café ✓'.encode() * 20000)"

        result = await stream_command([sys.executable, "-c", code], echo=False)

        assert result.stdout == "café ✓" * 20000

