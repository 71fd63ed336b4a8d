"""Authenticated JSON calls against provider REST APIs with error mapping."""

from __future__ import annotations

from typing import Any, Optional

import httpx
from loguru import logger

from threadsync.application.ports.credential_provider import CredentialProvider
from threadsync.domain.errors import AuthError, ProviderError, TransientProviderError

# 403 bodies that mean "slow down" rather than "forbidden"
RATE_LIMIT_MARKERS = (
    "ratelimitexceeded",
    "userratelimitexceeded",
    "quotaexceeded",
    "applicationthrottled",
    "mailboxconcurrency",
    "toomanyrequests",
)


def raise_for_provider_status(provider: str, response: httpx.Response) -> None:
    """Map a provider HTTP failure onto the sync error taxonomy."""
    status = response.status_code
    if status < 400:
        return

    detail = response.text[:200]
    message = f"{provider} API error {status}: {detail}"

    if status == 401:
        raise AuthError(message, provider=provider, status_code=status)
    if status == 429 or status >= 500:
        raise TransientProviderError(message, provider=provider, status_code=status)
    if status == 403 and any(marker in detail.lower() for marker in RATE_LIMIT_MARKERS):
        raise TransientProviderError(message, provider=provider, status_code=status)
    raise ProviderError(message, provider=provider, status_code=status)


class ProviderHttp:
    """Bearer-token JSON client shared by the provider adapters."""

    def __init__(
        self,
        provider: str,
        base_url: str,
        credentials: CredentialProvider,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.provider = provider
        self.credentials = credentials
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    async def get_json(
        self,
        user_email: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        not_found_ok: bool = False,
    ) -> Optional[dict[str, Any]]:
        """GET ``url`` (relative to the base URL, or absolute) and decode JSON.

        Returns None for a 404 when ``not_found_ok`` is set.
        """
        token = await self.credentials.get_access_token(user_email, self.provider)

        try:
            response = await self._client.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
        except httpx.TimeoutException as e:
            logger.warning(f"{self.provider} API timeout for {user_email}: {url}")
            raise TransientProviderError(f"{self.provider} API timeout", provider=self.provider) from e
        except httpx.TransportError as e:
            logger.warning(f"{self.provider} API unreachable for {user_email}: {e}")
            raise TransientProviderError(
                f"{self.provider} API unreachable: {e}", provider=self.provider
            ) from e

        if response.status_code == 404 and not_found_ok:
            return None

        raise_for_provider_status(self.provider, response)

        try:
            return response.json()
        except ValueError as e:
            raise TransientProviderError(
                f"{self.provider} API returned invalid JSON", provider=self.provider
            ) from e

    async def aclose(self) -> None:
        await self._client.aclose()
