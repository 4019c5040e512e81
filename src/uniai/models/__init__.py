"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from uniai.models.setting import Setting
from uniai.models.task import (
    GenerationTask,
    InvalidStateTransition,
    TaskStatus,
    validate_terminal_update,
)

__all__ = [
    "GenerationTask",
    "TaskStatus",
    "InvalidStateTransition",
    "validate_terminal_update",
    "Setting",
]
