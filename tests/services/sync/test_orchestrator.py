"""
Tests for the sync orchestrator and per-entity adapters.
"""

import json
import pytest
import pytest_asyncio
from datetime import date
from unittest.mock import AsyncMock, Mock, patch
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from api_integracao.core.database import Base, enable_sqlite_savepoints
from api_integracao.integrations.cettpro.errors import UpstreamServerError
from api_integracao.integrations.cettpro.retry import RetryConfig
from api_integracao.models import Course, CourseClass, Enrollment, Student, SyncLog
from api_integracao.services.sync.adapters import (
    CLASS_ROSTER_ENDPOINT, CLASSES_ENDPOINT, COURSES_ENDPOINT, QUALIFICATION_ENDPOINT
)
from api_integracao.services.sync.audit import SyncAuditWriter
from api_integracao.services.sync.orchestrator import SyncOrchestrator


@pytest_asyncio.fixture
async def session_factory():
    """In-memory database with the full schema."""
    engine = enable_sqlite_savepoints(
        create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


class FakePartnerClient:
    """Routes endpoints to canned payloads or errors."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    async def get(self, endpoint, token=None, *, params=None, collection=False):
        self.calls.append(("GET", endpoint, params))
        return self._respond(endpoint, params)

    async def send(self, method, endpoint, body, token=None, *, collection=False):
        self.calls.append((method, endpoint, body))
        return self._respond(endpoint, None)

    def _respond(self, endpoint, params):
        route = self.routes.get(endpoint, [])
        if callable(route):
            route = route(params)
        if isinstance(route, Exception):
            raise route
        return route


@pytest.fixture
def partner_data():
    """One course with one class holding one enrollment."""
    ids = {name: uuid4() for name in ("course", "class", "student", "enrollment")}
    courses = json.dumps([{
        "nomePrograma": "Qualifica",
        "ativo": True,
        "cursos": [{
            "idCurso": str(ids["course"]),
            "nomeCurso": "Eletricista",
            "cargaHoraria": "160",
            "descricao": "",
            "ativo": True,
            "modalidadeId": "",
        }],
    }])
    classes = [{
        "idTurma": str(ids["class"]),
        "nome": "Turma 01",
        "dataInicio": "2024-03-01T00:00:00",
        "dataTermino": "2024-06-30T00:00:00",
        "status": 1,
        "cursos": [{"idCurso": str(ids["course"])}],
    }]
    roster = {
        "idTurma": str(ids["class"]),
        "nome": "Turma 01",
        "matriculas": [{
            "idMatricula": str(ids["enrollment"]),
            "status": 1,
            "alunos": [{
                "idAluno": str(ids["student"]),
                "nome": "Maria Souza",
                "cpf": "12345678901",
                "dataNascimento": "2000-05-10",
                "genero": 2,
                "sexo": 2,
                "eMail": "maria@example.com",
            }],
        }],
    }
    routes = {
        COURSES_ENDPOINT: courses,
        CLASSES_ENDPOINT: classes,
        CLASS_ROSTER_ENDPOINT: roster,
    }
    return ids, routes


def make_orchestrator(session_factory, client, audit_writer=None):
    return SyncOrchestrator(
        session_factory,
        client,
        audit_writer=audit_writer,
        retry_config=RetryConfig(max_attempts=1)
    )


async def fetch_all(session_factory, model):
    async with session_factory() as db:
        return list((await db.execute(select(model).order_by(model.id))).scalars().all())


class TestSyncAll:
    """Test the full pipeline."""

    @pytest.mark.asyncio
    async def test_full_sync_in_dependency_order(self, session_factory, partner_data):
        """Courses, classes, students and enrollments are linked by local id."""
        ids, routes = partner_data
        client = FakePartnerClient(routes)

        result = await make_orchestrator(session_factory, client).sync_all()

        assert result.success is True
        assert result.entity_type == "all"
        assert result.total_processed == 4
        assert result.inserted == 4
        assert result.errors == []

        course, = await fetch_all(session_factory, Course)
        course_class, = await fetch_all(session_factory, CourseClass)
        student, = await fetch_all(session_factory, Student)
        enrollment, = await fetch_all(session_factory, Enrollment)

        assert course.workload == "160"
        assert course_class.course_id == course.id
        assert student.birth_date == date(2000, 5, 10)
        assert (enrollment.student_id, enrollment.class_id) == (student.id, course_class.id)
        assert enrollment.enrolled_at is not None

        endpoints = [call[1] for call in client.calls]
        assert endpoints == [COURSES_ENDPOINT, CLASSES_ENDPOINT, CLASS_ROSTER_ENDPOINT]
        assert client.calls[2][2] == {"idTurma": str(ids["class"])}

    @pytest.mark.asyncio
    async def test_one_audit_entry_per_stage(self, session_factory, partner_data):
        """Every stage is audited in processing order."""
        _, routes = partner_data

        await make_orchestrator(session_factory, FakePartnerClient(routes)).sync_all()

        logs = await fetch_all(session_factory, SyncLog)
        assert [log.entity_type for log in logs] == ["course", "class", "student", "enrollment"]
        assert all(log.operation == "Sync" and log.success for log in logs)
        assert [log.processed_count for log in logs] == [1, 1, 1, 1]

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, session_factory, partner_data):
        """Re-running with unchanged data applies nothing."""
        _, routes = partner_data
        orchestrator = make_orchestrator(session_factory, FakePartnerClient(routes))

        await orchestrator.sync_all()
        second = await orchestrator.sync_all()

        assert (second.inserted, second.updated, second.deleted) == (0, 0, 0)
        assert second.total_processed == 4

    @pytest.mark.asyncio
    async def test_failed_stage_does_not_stop_later_stages(self, session_factory, partner_data):
        """A course fetch failure is reported and classes still attempt to sync."""
        _, routes = partner_data
        routes[COURSES_ENDPOINT] = UpstreamServerError("partner unavailable")

        result = await make_orchestrator(session_factory, FakePartnerClient(routes)).sync_all()

        assert result.success is False
        assert "partner unavailable" in result.errors[0]
        assert "is not synced" in result.errors[1]
        assert await fetch_all(session_factory, CourseClass) == []

        logs = await fetch_all(session_factory, SyncLog)
        assert [log.success for log in logs] == [False, True, True, True]

    @pytest.mark.asyncio
    async def test_roster_fetched_once_per_run(self, session_factory, partner_data):
        """Students and enrollments share the same roster fetch."""
        _, routes = partner_data
        client = FakePartnerClient(routes)

        await make_orchestrator(session_factory, client).sync_all()

        roster_calls = [call for call in client.calls if call[1] == CLASS_ROSTER_ENDPOINT]
        assert len(roster_calls) == 1

    @pytest.mark.asyncio
    async def test_missing_class_soft_deletes_its_enrollments(self, session_factory, partner_data):
        """Enrollments of a class that is gone are no longer listed and get soft-deleted."""
        _, routes = partner_data
        orchestrator = make_orchestrator(session_factory, FakePartnerClient(routes))
        await orchestrator.sync_all()

        routes[CLASSES_ENDPOINT] = []
        result = await orchestrator.sync_all()

        assert result.success is True
        enrollment, = await fetch_all(session_factory, Enrollment)
        course_class, = await fetch_all(session_factory, CourseClass)
        assert course_class.deleted_at is not None
        assert enrollment.deleted_at is not None


class TestSingleEntity:
    """Test manual single-entity and date-range triggers."""

    @pytest.mark.asyncio
    async def test_sync_entity(self, session_factory, partner_data):
        """Only the requested entity type is reconciled."""
        _, routes = partner_data
        client = FakePartnerClient(routes)

        result = await make_orchestrator(session_factory, client).sync_entity("course")

        assert result.entity_type == "course"
        assert result.inserted == 1
        assert [call[1] for call in client.calls] == [COURSES_ENDPOINT]

    @pytest.mark.asyncio
    async def test_date_range_for_classes(self, session_factory, partner_data):
        """Only classes starting in range are applied and nothing is pruned."""
        ids, routes = partner_data
        orchestrator = make_orchestrator(session_factory, FakePartnerClient(routes))
        await orchestrator.sync_entity("course")
        await orchestrator.sync_entity("class")

        in_range, out_of_range = uuid4(), uuid4()
        routes[QUALIFICATION_ENDPOINT] = [{
            "idCurso": str(ids["course"]),
            "nomeCurso": "Eletricista",
            "turmas": [
                {"idTurma": str(in_range), "nome": "Turma Jan", "dataInicio": "2024-01-15T00:00:00", "status": 1},
                {"idTurma": str(out_of_range), "nome": "Turma Mai", "dataInicio": "2024-05-02T00:00:00", "status": 1},
            ],
        }]

        result = await orchestrator.sync_by_date_range("class", date(2024, 1, 1), date(2024, 1, 31))

        assert result.success is True
        assert result.total_processed == 1
        assert (result.inserted, result.deleted) == (1, 0)

        classes = {c.id_partner: c for c in await fetch_all(session_factory, CourseClass)}
        assert set(classes) == {ids["class"], in_range}
        assert classes[ids["class"]].deleted_at is None

        logs = await fetch_all(session_factory, SyncLog)
        assert logs[-1].operation == "SyncByDateRange"

    @pytest.mark.asyncio
    async def test_date_range_unsupported_type(self, session_factory):
        """Types without a bounded endpoint fail and are audited."""
        client = FakePartnerClient({})

        result = await make_orchestrator(session_factory, client).sync_by_date_range(
            "student", date(2024, 1, 1), date(2024, 1, 31)
        )

        assert result.success is False
        assert "not supported" in result.errors[0]
        assert client.calls == []
        log, = await fetch_all(session_factory, SyncLog)
        assert (log.entity_type, log.operation, log.success) == ("student", "SyncByDateRange", False)

    @pytest.mark.asyncio
    async def test_date_range_inverted(self, session_factory):
        """An inverted range fails without calling the partner."""
        client = FakePartnerClient({})

        result = await make_orchestrator(session_factory, client).sync_by_date_range(
            "class", date(2024, 2, 1), date(2024, 1, 1)
        )

        assert result.success is False
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_recent_classes_uses_thirty_day_window(self, session_factory):
        """The recent-classes trigger bounds the range to the last days."""
        orchestrator = make_orchestrator(session_factory, FakePartnerClient({}))
        orchestrator.sync_by_date_range = AsyncMock()

        await orchestrator.sync_recent_classes(30)

        entity_type, date_from, date_to = orchestrator.sync_by_date_range.await_args.args
        assert entity_type.value == "class"
        assert (date_to - date_from).days == 30


class TestStageIsolation:
    """Test that stages never raise."""

    @pytest.mark.asyncio
    async def test_unexpected_error_is_captured(self, session_factory):
        """An unexpected exception becomes a failed, audited result."""
        orchestrator = make_orchestrator(session_factory, FakePartnerClient({}))

        with patch(
            "api_integracao.services.sync.orchestrator.EntityReconciler.reconcile",
            new_callable=AsyncMock,
            side_effect=RuntimeError("unexpected")
        ):
            result = await orchestrator.sync_entity("course")

        assert result.success is False
        assert "unexpected" in result.errors[0]
        assert result.finished_at is not None
        log, = await fetch_all(session_factory, SyncLog)
        assert log.success is False

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_propagate(self, session_factory, partner_data):
        """A broken audit store never fails the sync."""
        _, routes = partner_data
        broken_audit = SyncAuditWriter(Mock(side_effect=RuntimeError("audit db down")))

        result = await make_orchestrator(
            session_factory, FakePartnerClient(routes), audit_writer=broken_audit
        ).sync_entity("course")

        assert result.success is True
        assert result.inserted == 1
        assert await fetch_all(session_factory, SyncLog) == []
