"""ORM models and database bootstrap."""

from .db_init import init_db
from .db_models import AiModelModel, Base, TaskModel, UpstreamModel

__all__ = ["Base", "UpstreamModel", "AiModelModel", "TaskModel", "init_db"]
