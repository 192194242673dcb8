"""Tests for host environment adapters."""

import io

import pytest
from rich.console import Console

from qgate.environment import AzurePipelinesEnvironment, CliEnvironment, TaskResult, parse_bool
from qgate.errors import ConfigurationError


class TestParseBool:
    @pytest.mark.parametrize("value", ["true", "True", "1", "yes", "on"])
    def test_truthy(self, value: str) -> None:
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", ["false", "0", "no", "off", "whatever"])
    def test_falsy(self, value: str) -> None:
        assert parse_bool(value) is False

    def test_blank_uses_default(self) -> None:
        assert parse_bool("", default=True) is True
        assert parse_bool(None) is False


class TestAzurePipelinesEnvironment:
    def test_reads_task_inputs(self) -> None:
        env = AzurePipelinesEnvironment(
            environ={"INPUT_IMAGEID": " nginx:latest ", "INPUT_CONTINUEONERROR": "true"},
            stream=io.StringIO(),
        )

        assert env.get_input("imageId") == "nginx:latest"
        assert env.get_input("platform") is None
        assert env.get_bool_input("continueOnError") is True

    def test_required_input_missing(self) -> None:
        env = AzurePipelinesEnvironment(environ={}, stream=io.StringIO())

        with pytest.raises(ConfigurationError):
            env.get_input("imageId", required=True)

    def test_reads_pipeline_variables(self) -> None:
        env = AzurePipelinesEnvironment(
            environ={"SYSTEM_TEAMPROJECT": "payments"}, stream=io.StringIO()
        )

        assert env.get_variable("System.TeamProject") == "payments"
        assert env.get_variable("System.AccessToken") is None

    def test_emits_logging_commands(self) -> None:
        stream = io.StringIO()
        env = AzurePipelinesEnvironment(environ={}, stream=stream)

        env.set_variable("criticalCount", "3")
        env.set_result(TaskResult.FAILED, "Found 3 critical vulnerabilities\nsecond line")

        lines = stream.getvalue().splitlines()
        assert lines[0] == "##vso[task.setvariable variable=criticalCount]3"
        assert lines[1] == (
            "##vso[task.complete result=Failed;]Found 3 critical vulnerabilities%0Asecond line"
        )
        assert env.result is TaskResult.FAILED


class TestCliEnvironment:
    def test_inputs_accept_native_values(self) -> None:
        env = CliEnvironment(inputs={"scanTimeout": 300, "offlineScan": True, "platform": None})

        assert env.get_input("scanTimeout") == "300"
        assert env.get_bool_input("offlineScan") is True
        assert env.get_input("platform") is None

    def test_records_outputs_and_exit_code(self) -> None:
        console = Console(file=io.StringIO(), force_terminal=False)
        env = CliEnvironment(variables={"System.TeamProject": "payments"}, console=console)

        env.set_variable("scanPassed", "false")
        env.set_result(TaskResult.FAILED, "denied")

        assert env.variables == {"scanPassed": "false"}
        assert env.get_variable("System.TeamProject") == "payments"
        assert env.exit_code == 1
        assert "Failed: denied" in console.file.getvalue()

    def test_issues_do_not_fail_the_process(self) -> None:
        env = CliEnvironment()
        env.set_result(TaskResult.SUCCEEDED_WITH_ISSUES, "continuing")

        assert env.exit_code == 0
        assert env.message == "continuing"
