"""Domain ports."""

from __future__ import annotations

from .crm import TagStore
from .fetching import EnrollmentFetchResult, EnrollmentRecord, EnrollmentSource
from .mirror import EngagementStateMirror
from .persistence import (
    CommunicationLogRepository,
    EngagementStateRepository,
    EnrollmentRepository,
    MemberRepository,
    PairResultRepository,
    PipelineExecutionRepository,
    ProductRepository,
    ReengagementConfigRepository,
    Repository,
)
from .unit_of_work import (
    EngagementRepositories,
    EngagementUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "CommunicationLogRepository",
    "EngagementRepositories",
    "EngagementStateMirror",
    "EngagementStateRepository",
    "EngagementUnitOfWork",
    "EnrollmentFetchResult",
    "EnrollmentRecord",
    "EnrollmentRepository",
    "EnrollmentSource",
    "MemberRepository",
    "PairResultRepository",
    "PipelineExecutionRepository",
    "ProductRepository",
    "ReengagementConfigRepository",
    "Repository",
    "RepositoryCollection",
    "TagStore",
    "UnitOfWork",
]
