"""Setting repository.

Provides data access methods for the Setting key-value store.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from uniai.models.setting import Setting
from uniai.models.task import utcnow


class SettingRepository:
    """Repository for operator settings (credentials, storage config, defaults)."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_value(self, key: str) -> Optional[str]:
        """Retrieve setting value for a key.

        Args:
            key: Setting key (e.g., "duomi_api_key")

        Returns:
            Stored value if found, None otherwise
        """
        setting = await self.session.get(Setting, key)
        return setting.value if setting else None

    async def get_many(self, keys: list[str]) -> dict[str, Optional[str]]:
        """Retrieve several settings at once.

        Args:
            keys: Setting keys to look up

        Returns:
            Mapping of found keys to values (missing keys are absent)
        """
        result = await self.session.execute(
            select(Setting).where(Setting.key.in_(keys))  # type: ignore[attr-defined]
        )
        return {setting.key: setting.value for setting in result.scalars().all()}

    async def set_value(self, key: str, value: Optional[str]) -> Setting:
        """Insert or update a setting.

        Args:
            key: Setting key
            value: New value (None clears it)

        Returns:
            The stored Setting
        """
        setting = await self.session.get(Setting, key)
        if setting is None:
            setting = Setting(key=key, value=value)
        else:
            setting.value = value
            setting.updated_at = utcnow()
        self.session.add(setting)
        await self.session.flush()
        return setting
