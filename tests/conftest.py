"""Test configuration and fixtures for qgate."""

import json
import sys
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from qgate.modules.scanner import AuthMethod, ScanConfiguration, ScanSession

FAKE_SCANNER = """#!{python}
import os
import sys

args = sys.argv[1:]
out_dir = args[args.index("--output-dir") + 1] if "--output-dir" in args else "."
os.makedirs(out_dir, exist_ok=True)

with open(os.path.join(out_dir, "argv.txt"), "w") as f:
    f.write("\\n".join(args))
with open(os.path.join(out_dir, "token.txt"), "w") as f:
    f.write(os.environ.get("QUALYS_ACCESS_TOKEN", ""))

report = os.environ.get("FAKE_QSCANNER_REPORT")
if report:
    with open(os.path.join(out_dir, "image-Report.sarif.json"), "w") as f:
        f.write(report)
    with open(os.path.join(out_dir, "image-ScanResult.json"), "w") as f:
        f.write("{{}}")
if os.environ.get("FAKE_QSCANNER_SBOM"):
    with open(os.path.join(out_dir, "image.spdx.json"), "w") as f:
        f.write("{{}}")

size = int(os.environ.get("FAKE_QSCANNER_BYTES", "0"))
if size:
    sys.stdout.write("x" * size)
    sys.stderr.write("e" * size)
print("scan complete")
sys.exit(int(os.environ.get("FAKE_QSCANNER_EXIT", "0")))
"""


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def token_config() -> ScanConfiguration:
    return ScanConfiguration(auth_method=AuthMethod.TOKEN, pod="US1", access_token="tok-123")


@pytest.fixture
def fake_scanner(temp_dir: Path) -> Path:
    """A stand-in scanner executable driven by FAKE_QSCANNER_* variables."""
    path = temp_dir / "bin" / "qscanner"
    path.parent.mkdir()
    path.write_text(FAKE_SCANNER.format(python=sys.executable))
    path.chmod(0o755)
    return path


@pytest.fixture
def scan_session(
    token_config: ScanConfiguration, fake_scanner: Path, temp_dir: Path
) -> ScanSession:
    return ScanSession(
        config=token_config,
        work_dir=temp_dir,
        binary_path=fake_scanner,
        access_token="tok-123",
    )


def sarif_result(
    rule_id: str,
    level: str | None = None,
    severity: int | None = None,
    **properties: Any,
) -> dict[str, Any]:
    """Build a SARIF result dict for tests."""
    result: dict[str, Any] = {"ruleId": rule_id, "message": {"text": f"Issue {rule_id}"}}
    if level is not None:
        result["level"] = level
    props = dict(properties)
    if severity is not None:
        props["severity"] = severity
    if props:
        result["properties"] = props
    return result


def sarif_document(
    results: list[dict[str, Any]],
    rules: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    return {
        "version": "2.1.0",
        "runs": [
            {
                "tool": {"driver": {"name": "qscanner", "rules": rules or []}},
                "results": results,
            }
        ],
    }


@pytest.fixture
def write_sarif(temp_dir: Path):
    """Write a SARIF document and return its path."""

    def _write(document: Any, name: str = "scan-Report.sarif.json") -> Path:
        path = temp_dir / name
        path.write_text(json.dumps(document))
        return path

    return _write
