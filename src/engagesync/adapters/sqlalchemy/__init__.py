"""SQLAlchemy adapter package."""

from __future__ import annotations

from .mappings import create_all_tables, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyCommunicationLogRepository,
    SqlAlchemyEngagementStateRepository,
    SqlAlchemyEnrollmentRepository,
    SqlAlchemyMemberRepository,
    SqlAlchemyPairResultRepository,
    SqlAlchemyPipelineExecutionRepository,
    SqlAlchemyProductRepository,
    SqlAlchemyReengagementConfigRepository,
)
from .unit_of_work import SqlAlchemyUnitOfWork, StartupError, shutdown, startup

__all__ = [
    "SqlAlchemyCommunicationLogRepository",
    "SqlAlchemyEngagementStateRepository",
    "SqlAlchemyEnrollmentRepository",
    "SqlAlchemyMemberRepository",
    "SqlAlchemyPairResultRepository",
    "SqlAlchemyPipelineExecutionRepository",
    "SqlAlchemyProductRepository",
    "SqlAlchemyReengagementConfigRepository",
    "SqlAlchemyUnitOfWork",
    "StartupError",
    "create_all_tables",
    "mapper_registry",
    "shutdown",
    "startup",
]
