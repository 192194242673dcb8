"""Access token resolution for the scanning service."""

from __future__ import annotations

import logging

import httpx

from qgate.errors import AuthenticationError, ConfigurationError, ErrorCode
from qgate.utils.retry import RetryPolicy, with_retry

from .models import AuthMethod, ScanConfiguration

logger = logging.getLogger(__name__)

POD_GATEWAY_URLS: dict[str, str] = {
    "US1": "https://gateway.qg1.apps.qualys.com",
    "US2": "https://gateway.qg2.apps.qualys.com",
    "US3": "https://gateway.qg3.apps.qualys.com",
    "US4": "https://gateway.qg4.apps.qualys.com",
    "EU1": "https://gateway.qg1.apps.qualys.eu",
    "EU2": "https://gateway.qg2.apps.qualys.eu",
    "CA1": "https://gateway.qg4.apps.qualys.ca",
    "IN1": "https://gateway.qg1.apps.qualys.in",
    "AU1": "https://gateway.qg1.apps.qualys.com.au",
    "UK1": "https://gateway.qg1.apps.qualys.co.uk",
    "AE1": "https://gateway.qg1.apps.qualys.ae",
    "KSA1": "https://gateway.qg1.apps.qualysksa.com",
}


def gateway_url_for(pod: str) -> str:
    """Look up the API gateway for a pod identifier."""
    url = POD_GATEWAY_URLS.get(pod.strip().upper())
    if url is None:
        raise ConfigurationError(
            ErrorCode.UNKNOWN_REGION,
            f"Unknown pod: {pod}. Valid pods: {', '.join(POD_GATEWAY_URLS)}",
        )
    return url


class CredentialResolver:
    """Turn a ``ScanConfiguration`` into a bearer token."""

    def __init__(
        self,
        config: ScanConfiguration,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
    ):
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout

    async def resolve_token(self) -> str:
        """
        Return the token to hand to the scanner.

        Token auth returns the configured token unchanged. Credential auth
        exchanges username and password at the pod's gateway, retrying
        transient failures.

        Raises:
            AuthenticationError: The gateway rejected the exchange
        """
        if self.config.auth_method is AuthMethod.TOKEN:
            logger.info("Using provided access token for authentication")
            return self.config.access_token or ""

        auth_url = f"{gateway_url_for(self.config.pod)}/auth"
        logger.info("Authenticating with %s to obtain access token", auth_url)
        token = await with_retry(
            lambda: self._exchange(auth_url),
            self.retry_policy,
            on_retry=lambda attempt, exc, delay: logger.warning(
                "Authentication attempt %d failed (%s); retrying in %.1fs", attempt, exc, delay
            ),
        )
        logger.info("Successfully obtained access token")
        return token

    async def _exchange(self, auth_url: str) -> str:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            verify=self.config.verify_tls,
            proxy=self.config.proxy,
        ) as client:
            response = await client.post(
                auth_url,
                data={
                    "username": self.config.username or "",
                    "password": self.config.password or "",
                    "token": "true",
                },
            )

        if response.is_success:
            return response.text.strip()
        if response.status_code == 401:
            raise AuthenticationError(
                ErrorCode.INVALID_CREDENTIALS,
                "Authentication failed: Invalid username or password",
                status_code=401,
            )
        raise AuthenticationError(
            ErrorCode.AUTH_FAILED,
            f"Authentication failed with status {response.status_code}: {response.text}",
            status_code=response.status_code,
            body=response.text,
        )
