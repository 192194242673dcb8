"""Host environment adapters for task inputs and outputs.

Task runners only talk to the ``Environment`` protocol, so the same scan
logic works inside an Azure Pipelines task and from the command line.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from enum import StrEnum
from typing import Protocol, TextIO

from rich.console import Console
from rich.markup import escape

from qgate.errors import ConfigurationError, ErrorCode

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}


class TaskResult(StrEnum):
    SUCCEEDED = "Succeeded"
    SUCCEEDED_WITH_ISSUES = "SucceededWithIssues"
    FAILED = "Failed"


def parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


class Environment(Protocol):
    """Narrow capability interface onto the hosting CI platform."""

    def get_input(self, name: str, required: bool = False) -> str | None: ...

    def get_bool_input(self, name: str, default: bool = False) -> bool: ...

    def get_variable(self, name: str) -> str | None: ...

    def set_variable(self, name: str, value: str) -> None: ...

    def set_result(self, result: TaskResult, message: str = "") -> None: ...


def _missing_input(name: str) -> ConfigurationError:
    return ConfigurationError(ErrorCode.INVALID_CONFIGURATION, f"Input required: {name}")


class AzurePipelinesEnvironment:
    """Adapter for Azure Pipelines tasks (``INPUT_*`` variables, ``##vso`` commands)."""

    def __init__(self, environ: Mapping[str, str] | None = None, stream: TextIO | None = None):
        self._environ = environ if environ is not None else os.environ
        self._stream = stream or sys.stdout
        self.result: TaskResult | None = None

    @staticmethod
    def _input_key(name: str) -> str:
        return "INPUT_" + name.replace(" ", "_").replace(".", "_").upper()

    def get_input(self, name: str, required: bool = False) -> str | None:
        value = self._environ.get(self._input_key(name), "").strip()
        if not value:
            if required:
                raise _missing_input(name)
            return None
        return value

    def get_bool_input(self, name: str, default: bool = False) -> bool:
        return parse_bool(self.get_input(name), default)

    def get_variable(self, name: str) -> str | None:
        """Read a pipeline variable such as ``System.AccessToken``."""
        key = name.replace(".", "_").upper()
        return self._environ.get(key) or None

    @staticmethod
    def _escape(value: str) -> str:
        return value.replace("%", "%AZP25").replace("\r", "%0D").replace("\n", "%0A")

    def set_variable(self, name: str, value: str) -> None:
        self._stream.write(f"##vso[task.setvariable variable={name}]{self._escape(value)}\n")

    def set_result(self, result: TaskResult, message: str = "") -> None:
        self.result = result
        self._stream.write(f"##vso[task.complete result={result};]{self._escape(message)}\n")


class CliEnvironment:
    """Dict-backed adapter used by the ``qgate`` command line."""

    def __init__(
        self,
        inputs: Mapping[str, object] | None = None,
        variables: Mapping[str, str] | None = None,
        console: Console | None = None,
    ):
        self.inputs = {k: v for k, v in (inputs or {}).items() if v is not None}
        self.pipeline_variables = dict(variables or {})
        self.variables: dict[str, str] = {}
        self.result: TaskResult | None = None
        self.message = ""
        self.console = console

    def get_input(self, name: str, required: bool = False) -> str | None:
        raw = self.inputs.get(name)
        value = "" if raw is None else str(raw).strip()
        if not value:
            if required:
                raise _missing_input(name)
            return None
        return value

    def get_bool_input(self, name: str, default: bool = False) -> bool:
        raw = self.inputs.get(name)
        if isinstance(raw, bool):
            return raw
        return parse_bool(self.get_input(name), default)

    def get_variable(self, name: str) -> str | None:
        return self.pipeline_variables.get(name)

    def set_variable(self, name: str, value: str) -> None:
        self.variables[name] = value

    def set_result(self, result: TaskResult, message: str = "") -> None:
        self.result = result
        self.message = message
        if self.console is not None:
            style = {
                TaskResult.SUCCEEDED: "green",
                TaskResult.SUCCEEDED_WITH_ISSUES: "yellow",
                TaskResult.FAILED: "red",
            }[result]
            suffix = f": {escape(message)}" if message else ""
            self.console.print(f"[{style}]{result}{suffix}[/{style}]")

    @property
    def exit_code(self) -> int:
        return 1 if self.result is TaskResult.FAILED else 0
