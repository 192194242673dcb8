"""Download, verify and unpack the QScanner binary."""

from __future__ import annotations

import gzip
import hashlib
import logging
import os
import platform
import shutil
import sys
from pathlib import Path
from urllib.parse import urljoin, urlparse

import httpx

from qgate.errors import ConfigurationError, ErrorCode, IntegrityError, NetworkError
from qgate.utils.retry import RetryPolicy, retry_on_status, with_retry

logger = logging.getLogger(__name__)

QSCANNER_BINARY_URL = "https://github.com/nelssec/qualys-lambda/raw/main/scanner-lambda/qscanner.gz"
QSCANNER_SHA256 = "1a31b854154ee4594bb94e28aa86460b14a75687085d097f949e91c5fd00413d"
BINARY_NAME = "qscanner"

SUPPORTED_PLATFORMS = frozenset({("linux", "amd64")})
MAX_REDIRECTS = 10
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})

_PLATFORM_NAMES = {"linux": "linux", "darwin": "darwin", "win32": "windows"}
_ARCH_NAMES = {"x86_64": "amd64", "amd64": "amd64", "aarch64": "arm64", "arm64": "arm64"}


def detect_platform() -> tuple[str, str]:
    """Return the normalized ``(platform, arch)`` of the running host."""
    system = _PLATFORM_NAMES.get(sys.platform)
    if system is None:
        raise ConfigurationError(
            ErrorCode.UNSUPPORTED_PLATFORM, f"Unsupported platform: {sys.platform}"
        )
    machine = platform.machine().lower()
    arch = _ARCH_NAMES.get(machine)
    if arch is None:
        raise ConfigurationError(
            ErrorCode.UNSUPPORTED_PLATFORM, f"Unsupported architecture: {machine}"
        )
    return system, arch


def _require_https(url: str, context: str) -> None:
    if urlparse(url).scheme.lower() != "https":
        raise NetworkError(ErrorCode.INSECURE_URL, f"Refusing non-HTTPS {context}: {url}")


def sha256_file(path: Path) -> str:
    """Hex SHA-256 digest of a file, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _remove(*paths: Path) -> None:
    for path in paths:
        try:
            path.unlink()
        except FileNotFoundError:
            pass


class BinaryProvisioner:
    """Ensure a verified, executable scanner binary exists under ``work_dir``."""

    def __init__(
        self,
        work_dir: Path,
        url: str = QSCANNER_BINARY_URL,
        sha256: str = QSCANNER_SHA256,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 120.0,
        verify_tls: bool = True,
        proxy: str | None = None,
    ):
        self.work_dir = Path(work_dir)
        self.url = url
        self.sha256 = sha256
        self.retry_policy = retry_policy or RetryPolicy(is_retryable=retry_on_status())
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.proxy = proxy

    def binary_path_for(self, system: str, arch: str) -> Path:
        return self.work_dir / f"{system}-{arch}" / BINARY_NAME

    async def ensure_binary(self) -> Path:
        """Return the binary path, downloading and verifying it when missing."""
        system, arch = detect_platform()
        if (system, arch) not in SUPPORTED_PLATFORMS:
            raise ConfigurationError(
                ErrorCode.UNSUPPORTED_PLATFORM,
                f"QScanner binary only supports linux-amd64. Current: {system}-{arch}",
            )

        binary_path = self.binary_path_for(system, arch)
        if binary_path.exists():
            logger.info("QScanner binary already present at %s", binary_path)
            return binary_path

        binary_path.parent.mkdir(parents=True, exist_ok=True)
        archive_path = binary_path.with_name(f"{BINARY_NAME}.gz.part")
        extract_path = binary_path.with_name(f"{BINARY_NAME}.extract")

        try:
            logger.info("Downloading QScanner from %s", self.url)
            await with_retry(
                lambda: self._download(archive_path),
                self.retry_policy,
                on_retry=lambda attempt, exc, delay: logger.warning(
                    "Download attempt %d failed (%s); retrying in %.1fs", attempt, exc, delay
                ),
            )

            actual = sha256_file(archive_path)
            if actual.lower() != self.sha256.lower():
                raise IntegrityError(
                    ErrorCode.CHECKSUM_MISMATCH,
                    f"SHA256 checksum mismatch. Expected: {self.sha256}, Got: {actual}",
                )
            logger.info("Checksum verified")

            with gzip.open(archive_path, "rb") as src, open(extract_path, "wb") as dest:
                shutil.copyfileobj(src, dest)
            os.chmod(extract_path, 0o755)
            os.replace(extract_path, binary_path)
        finally:
            _remove(archive_path, extract_path)

        logger.info("QScanner binary ready at %s", binary_path)
        return binary_path

    async def _download(self, dest: Path) -> None:
        """Fetch ``self.url`` into ``dest``, validating every redirect hop."""
        url = self.url
        try:
            async with httpx.AsyncClient(
                follow_redirects=False,
                timeout=self.timeout,
                verify=self.verify_tls,
                proxy=self.proxy,
            ) as client:
                for _ in range(MAX_REDIRECTS + 1):
                    _require_https(url, "download URL")
                    async with client.stream("GET", url) as response:
                        if response.status_code in REDIRECT_STATUSES:
                            location = response.headers.get("location")
                            if not location:
                                raise NetworkError(
                                    ErrorCode.DOWNLOAD_FAILED,
                                    f"Redirect without Location header from {url}",
                                    status_code=response.status_code,
                                )
                            url = urljoin(url, location)
                            _require_https(url, "redirect target")
                            continue
                        if response.status_code != 200:
                            raise NetworkError(
                                ErrorCode.DOWNLOAD_FAILED,
                                f"Failed to download: HTTP {response.status_code}",
                                status_code=response.status_code,
                            )
                        with open(dest, "wb") as f:
                            async for chunk in response.aiter_bytes():
                                f.write(chunk)
                        return
            raise NetworkError(ErrorCode.DOWNLOAD_FAILED, f"Too many redirects from {self.url}")
        except BaseException:
            _remove(dest)
            raise
