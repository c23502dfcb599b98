"""SQLAlchemy-backed unit of work for the engagement pipeline.

The adapter holds one engine per process. Reconciliation opens a unit of work
per (member, product) pair, so a failed pair only rolls back its own rows.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from engagesync.adapters.sqlalchemy.mappings import create_all_tables
from engagesync.adapters.sqlalchemy.repositories import (
    SqlAlchemyCommunicationLogRepository,
    SqlAlchemyEngagementStateRepository,
    SqlAlchemyEnrollmentRepository,
    SqlAlchemyMemberRepository,
    SqlAlchemyPairResultRepository,
    SqlAlchemyPipelineExecutionRepository,
    SqlAlchemyProductRepository,
    SqlAlchemyReengagementConfigRepository,
)
from engagesync.config import get_database_config
from engagesync.domain.ports import EngagementRepositories, RepositoryCollection

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when the persistence adapter is used before ``startup()``."""


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._session_factory = None
        self._engine = value

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._engine is None:
            raise StartupError(
                "Engagement database not initialised. Call "
                "engagesync.adapters.sqlalchemy.startup() before opening a unit of work."
            )
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self._session_factory


_STATE = _AdapterState()


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Bind the adapter to an engine and create any missing tables."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "Engagement database already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or create_engine(
        database_uri or get_database_config().uri, future=True
    )
    if resolved_engine.dialect.name == "sqlite" and not event.contains(
        resolved_engine, "connect", _enable_sqlite_foreign_keys
    ):
        event.listen(resolved_engine, "connect", _enable_sqlite_foreign_keys)
    create_all_tables(resolved_engine)
    _STATE.engine = resolved_engine
    log.info("Using database %s", resolved_engine.url.render_as_string(hide_password=True))


def configured_engine() -> Engine | None:
    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the engine and forget it; ``startup()`` may be called again."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class BaseSqlAlchemyUnitOfWork[TRepositories: RepositoryCollection](ABC):
    """Session-per-block unit of work; leaving the block on error rolls back."""

    def __init__(self) -> None:
        self.session_factory: sessionmaker[Session] = _STATE.session_factory
        self._session: Session | None = None

    @abstractmethod
    def _build_repositories(self, session: Session) -> TRepositories: ...

    def __enter__(self) -> BaseSqlAlchemyUnitOfWork[TRepositories]:
        self.session = self.session_factory()
        self._repositories = self._build_repositories(self.session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            log.debug("Rolling back unit of work after %s", exc_type.__name__)
            self.rollback()
        self.session.close()
        self.session = None
        return False

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    @property
    def repositories(self) -> TRepositories:
        if self._session is None:
            raise StartupError("Unit of work used outside its with-block")
        return self._repositories

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work used outside its with-block")
        return self._session

    @session.setter
    def session(self, session: Session | None) -> None:
        if self._session is not None and session is not None:
            raise StartupError("Unit of work is already open")
        self._session = session


class SqlAlchemyUnitOfWork(BaseSqlAlchemyUnitOfWork[EngagementRepositories]):
    """Unit of work over every engagement repository."""

    def _build_repositories(self, session: Session) -> EngagementRepositories:
        return EngagementRepositories(
            members=SqlAlchemyMemberRepository(session),
            products=SqlAlchemyProductRepository(session),
            enrollments=SqlAlchemyEnrollmentRepository(session),
            reengagement_configs=SqlAlchemyReengagementConfigRepository(session),
            engagement_states=SqlAlchemyEngagementStateRepository(session),
            communications=SqlAlchemyCommunicationLogRepository(session),
            executions=SqlAlchemyPipelineExecutionRepository(session),
            pair_results=SqlAlchemyPairResultRepository(session),
        )


if TYPE_CHECKING:
    from engagesync.domain.ports import EngagementUnitOfWork

    _uow_check: EngagementUnitOfWork = SqlAlchemyUnitOfWork()
