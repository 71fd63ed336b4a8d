"""Access tokens handed to the provider adapters."""

from __future__ import annotations

from typing import Mapping

from loguru import logger
from pydantic import SecretStr

from threadsync.domain.entities.thread import normalize_user_email
from threadsync.domain.errors import AuthError


class StaticCredentialProvider:
    """Tokens keyed by "provider:user_email", refreshed outside this process."""

    def __init__(self, tokens: Mapping[str, SecretStr | str] | None = None):
        self._tokens: dict[str, str] = {}
        for key, token in (tokens or {}).items():
            provider, _, user_email = key.partition(":")
            self.set_token(user_email, provider, token)

    def set_token(self, user_email: str, provider: str, token: SecretStr | str) -> None:
        value = token.get_secret_value() if isinstance(token, SecretStr) else token
        self._tokens[self._key(user_email, provider)] = value

    async def get_access_token(self, user_email: str, provider: str) -> str:
        token = self._tokens.get(self._key(user_email, provider))
        if not token:
            logger.warning(f"No access token for {user_email} ({provider})")
            raise AuthError(f"No credentials for {user_email} on {provider}", provider=provider)
        return token

    @staticmethod
    def _key(user_email: str, provider: str) -> str:
        return f"{provider.strip().lower()}:{normalize_user_email(user_email)}"
