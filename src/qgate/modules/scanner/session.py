"""Per-invocation scanner context."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .credentials import CredentialResolver
from .models import ScanConfiguration
from .provisioner import BinaryProvisioner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanSession:
    """A provisioned binary plus the credential to run it with."""

    config: ScanConfiguration
    work_dir: Path
    binary_path: Path
    access_token: str = field(repr=False)


async def prepare_session(
    config: ScanConfiguration,
    work_dir: Path,
    provisioner: BinaryProvisioner | None = None,
    resolver: CredentialResolver | None = None,
) -> ScanSession:
    """Provision the binary, then resolve the token."""
    work_dir = Path(work_dir)
    work_dir.mkdir(parents=True, exist_ok=True)

    provisioner = provisioner or BinaryProvisioner(
        work_dir, verify_tls=config.verify_tls, proxy=config.proxy
    )
    binary_path = await provisioner.ensure_binary()

    resolver = resolver or CredentialResolver(config)
    token = await resolver.resolve_token()

    return ScanSession(
        config=config, work_dir=work_dir, binary_path=binary_path, access_token=token
    )
