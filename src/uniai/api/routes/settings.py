"""Operator settings API endpoints.

- GET /api/settings/{key} - Read one setting (secrets are masked)
- PUT /api/settings/{key} - Create or update one setting

Provider API keys, the active provider and the storage configuration are read
from these settings at submission time (storage at startup).
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Path, status
from pydantic import BaseModel, Field

from uniai.api.dependencies import get_uow_factory
from uniai.services.exceptions import ValidationError
from uniai.services.orchestrator import ACTIVE_PROVIDER_SETTING
from uniai.services.providers.registry import PROVIDERS_BY_NAME

logger = structlog.get_logger()
router = APIRouter(prefix="/api/settings", tags=["settings"])

SECRET_SUFFIXES = ("_key", "_secret", "_token", "_password")


def is_secret_key(key: str) -> bool:
    return key.lower().endswith(SECRET_SUFFIXES)


def mask_value(value: Optional[str]) -> Optional[str]:
    """Keep only the last four characters of a secret."""
    if not value:
        return value
    if len(value) <= 8:
        return "****"
    return f"****{value[-4:]}"


class SettingValue(BaseModel):
    value: Optional[str] = Field(default=None, description="New value (null clears it)")


class SettingResponse(BaseModel):
    key: str
    value: Optional[str] = None
    masked: bool = False


@router.get("/{key}", response_model=SettingResponse)
async def get_setting(
    key: str = Path(..., max_length=100),
    uow_factory=Depends(get_uow_factory),
) -> SettingResponse:
    """Read one setting. Unknown keys return a null value."""
    async with await uow_factory() as uow:
        value = await uow.settings.get_value(key)

    if is_secret_key(key):
        return SettingResponse(key=key, value=mask_value(value), masked=value is not None)
    return SettingResponse(key=key, value=value)


@router.put("/{key}", response_model=SettingResponse, status_code=status.HTTP_200_OK)
async def put_setting(
    body: SettingValue,
    key: str = Path(..., max_length=100),
    uow_factory=Depends(get_uow_factory),
) -> SettingResponse:
    """Create or update one setting.

    Raises:
        ValidationError: ``active_provider`` set to an unknown provider (400)
    """
    if key == ACTIVE_PROVIDER_SETTING and body.value and body.value not in PROVIDERS_BY_NAME:
        raise ValidationError(
            f"Unknown provider '{body.value}'. Valid providers: {', '.join(PROVIDERS_BY_NAME)}"
        )

    async with await uow_factory() as uow:
        await uow.settings.set_value(key, body.value)

    logger.info("settings.updated", key=key, cleared=body.value is None)

    if is_secret_key(key):
        return SettingResponse(key=key, value=mask_value(body.value), masked=body.value is not None)
    return SettingResponse(key=key, value=body.value)
