"""Repository layer.

Provides data access abstractions for all domain entities.
Each repository is self-contained; there is no shared base class.
"""

from uniai.repositories.setting import SettingRepository
from uniai.repositories.task import TaskRepository

__all__ = [
    "TaskRepository",
    "SettingRepository",
]
