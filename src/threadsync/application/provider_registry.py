"""Lookup of provider adapters by name."""

from __future__ import annotations

from typing import Iterable, Iterator

from threadsync.application.ports.email_provider import EmailProvider
from threadsync.domain.errors import UnsupportedProviderError


class ProviderRegistry:
    def __init__(self, providers: Iterable[EmailProvider] = ()) -> None:
        self._providers: dict[str, EmailProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: EmailProvider) -> None:
        self._providers[provider.name.lower()] = provider

    def get(self, name: str) -> EmailProvider:
        try:
            return self._providers[name.strip().lower()]
        except KeyError:
            raise UnsupportedProviderError(name, self.names()) from None

    def names(self) -> list[str]:
        return sorted(self._providers)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._providers

    def __iter__(self) -> Iterator[EmailProvider]:
        return iter(self._providers.values())
