"""
Storage
=======
SQLAlchemy persistence for downloaded clips and workflow runs.
"""
from .database import Database, in_memory_database
from .repository import ClipRepository, RunRepository

__all__ = ["Database", "in_memory_database", "ClipRepository", "RunRepository"]
