from __future__ import annotations
from typing import Protocol

class CredentialProvider(Protocol):
    # Hands out a live access token; refresh happens elsewhere. Raises AuthError.
    async def get_access_token(self, user_email: str, provider: str) -> str: ...
