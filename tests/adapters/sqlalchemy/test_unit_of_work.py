from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, inspect

from engagesync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)
from engagesync.domain.model import (
    CommunicationKind,
    Enrollment,
    ExecutionStatus,
    ExecutionType,
    Member,
    PipelineExecution,
    Platform,
    Product,
    TriggerSource,
)
from engagesync.domain.reconciliation import TagReconciler
from engagesync.domain.tag_cache import TagCache
from tests.helpers.engagement import NOW, Clock, make_config

if TYPE_CHECKING:
    from collections.abc import Callable

    from tests.helpers.crm import FakeTagStore

EMAIL = "m@example.com"


def test_unit_of_work_requires_startup() -> None:
    shutdown()

    with pytest.raises(StartupError):
        SqlAlchemyUnitOfWork()


def test_startup_refuses_reconfiguration_without_force() -> None:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    startup(engine=engine, force=True)
    try:
        assert is_started()
        assert configured_engine() is engine
        assert "engagement_state" in inspect(engine).get_table_names()
        with pytest.raises(StartupError):
            startup(engine=engine)
    finally:
        shutdown()

    assert not is_started()


def test_repositories_require_entered_unit_of_work(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    uow = sqlite_unit_of_work()

    with pytest.raises(StartupError):
        _ = uow.repositories


def test_rollback_on_error_discards_changes(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    with pytest.raises(RuntimeError), sqlite_unit_of_work() as uow:
        uow.repositories.members.add(Member(email=EMAIL))
        raise RuntimeError("boom")

    with sqlite_unit_of_work() as uow:
        assert uow.repositories.members.get(EMAIL) is None


def test_execution_saved_at_start_and_finish(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    execution = PipelineExecution(
        execution_type=ExecutionType.AUTOMATIC,
        triggered_by=TriggerSource.CRON,
        started_at=NOW,
    )
    with sqlite_unit_of_work() as uow:
        uow.repositories.executions.add(execution)
        uow.commit()

    execution.summary = {"pairs_total": 1}
    execution.finish(ExecutionStatus.SUCCESS, now=NOW + timedelta(seconds=30))
    with sqlite_unit_of_work() as uow:
        uow.repositories.executions.add(execution)
        uow.commit()

    with sqlite_unit_of_work() as uow:
        recent = uow.repositories.executions.recent(10)

    assert len(recent) == 1
    assert recent[0].status is ExecutionStatus.SUCCESS
    assert recent[0].summary == {"pairs_total": 1}
    assert recent[0].duration_seconds == 30.0


def test_reconciler_persists_state_through_sqlalchemy(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
    tag_store: FakeTagStore,
) -> None:
    clock = Clock()
    with sqlite_unit_of_work() as uow:
        product = Product(code="P", platform=Platform.HOTMART)
        uow.repositories.products.add(product)
        uow.repositories.members.add(Member(email=EMAIL))
        uow.repositories.enrollments.add(
            Enrollment(
                member_email=EMAIL,
                product_id=product.id,
                platform=Platform.HOTMART,
                last_activity=NOW - timedelta(days=10),
                enrolled_at=NOW - timedelta(days=120),
            )
        )
        uow.repositories.reengagement_configs.add(
            make_config("P", ((1, 7, "Level 1", 3), (2, 14, "Level 2", 3)))
        )
        uow.commit()

    reconciler = TagReconciler(
        unit_of_work_factory=sqlite_unit_of_work,
        tag_store=tag_store,
        tag_cache=TagCache(tag_store),
        clock=clock,
    )

    first = reconciler.reconcile(EMAIL, "P")
    clock.advance(days=5)
    second = reconciler.reconcile(EMAIL, "P")

    assert first.tags_applied == ["P - Level 1"]
    assert second.tags_applied == ["P - Level 2"]
    assert second.tags_removed == ["P - Level 1"]
    assert tag_store.tags_of(EMAIL) == {"P - Level 2"}

    with sqlite_unit_of_work() as uow:
        state = uow.repositories.engagement_states.get(EMAIL, "P")
        assert state is not None
        assert state.current_level == 2
        assert state.tags_applied_count == 2
        assert [entry.tag_name for entry in state.history] == ["P - Level 1", "P - Level 2"]
        pending = uow.repositories.communications.latest_pending(EMAIL, "P")
        assert pending is not None
        assert pending.kind is CommunicationKind.ESCALATED
