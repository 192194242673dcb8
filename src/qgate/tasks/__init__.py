"""Pipeline task runners."""

from .container_scan import run_container_scan
from .sca_scan import run_sca_scan

__all__ = ["run_container_scan", "run_sca_scan"]
