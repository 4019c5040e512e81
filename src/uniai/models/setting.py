"""Setting entity - key-value store for operator configuration and credentials."""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from uniai.models.task import utcnow


class Setting(SQLModel, table=True):
    """Setting holds one operator-managed value (API keys, storage config, defaults)."""

    __tablename__ = "settings"  # type: ignore[assignment]

    key: str = Field(primary_key=True, max_length=100)
    value: Optional[str] = Field(default=None)
    updated_at: datetime = Field(default_factory=utcnow)
