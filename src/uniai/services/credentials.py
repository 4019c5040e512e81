"""Credential lookup injected into the orchestrator.

Provider API keys and the default provider live in the settings table so an
operator can change them at runtime; environment settings act as fallbacks.
"""

from typing import Mapping, Optional, Protocol

from uniai.uow import UnitOfWorkFactory


class CredentialResolver(Protocol):
    """Read-only access to credentials and operator settings."""

    async def get_credential(self, key: str) -> Optional[str]: ...

    async def get_setting(self, key: str) -> Optional[str]: ...


class StaticCredentialResolver:
    """Resolver backed by a fixed mapping (scripts and tests)."""

    def __init__(self, values: Mapping[str, Optional[str]]):
        self.values = dict(values)

    async def get_credential(self, key: str) -> Optional[str]:
        return self.values.get(key) or None

    async def get_setting(self, key: str) -> Optional[str]:
        return self.values.get(key) or None


class SettingsStoreCredentialResolver:
    """Resolver reading the settings table, falling back to static values.

    Every lookup opens its own unit of work, so a value saved through the
    settings API is picked up by the next submission.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        fallbacks: Optional[Mapping[str, Optional[str]]] = None,
    ):
        """Initialize resolver.

        Args:
            uow_factory: Factory producing UnitOfWork instances
            fallbacks: Values used when the settings table has no entry
        """
        self.uow_factory = uow_factory
        self.fallbacks = dict(fallbacks or {})

    async def get_setting(self, key: str) -> Optional[str]:
        async with await self.uow_factory() as uow:
            value = await uow.settings.get_value(key)
        if value:
            return value
        return self.fallbacks.get(key) or None

    async def get_credential(self, key: str) -> Optional[str]:
        value = await self.get_setting(key)
        return value.strip() if value else None
