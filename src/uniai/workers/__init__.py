"""Background units for async processing tasks."""

from uniai.workers.generation_worker import (
    GenerationJob,
    process_task,
    recover_orphaned_tasks,
)

__all__ = [
    "GenerationJob",
    "process_task",
    "recover_orphaned_tasks",
]
