"""
Per-entity capabilities plugged into the generic reconciler.

Each adapter knows where its remote collection lives, how to read the join
key from a raw record, which local references it needs and how a decoded
record maps onto local columns. The diff/apply loop itself lives in
:mod:`reconciler` and is shared by every entity type.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Type
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from api_integracao.integrations.cettpro.client import PartnerClient
from api_integracao.integrations.cettpro.errors import DecodeError, MissingReferenceError
from api_integracao.integrations.cettpro.schemas import (
    RemoteClass,
    RemoteCourse,
    RemoteEnrollment,
    RemoteRecord,
    RemoteStudent,
    parse_lenient_date,
    read_partner_key,
    unwrap_json_list,
)
from api_integracao.models import Course, CourseClass, EntityType, Enrollment, Student
from api_integracao.models.base import PartnerRecordMixin
from api_integracao.services.sync.store import PartnerRecordStore


logger = logging.getLogger(__name__)

COURSES_ENDPOINT = "api/v1/RetornaCursos"
CLASSES_ENDPOINT = "api/v1/Turma"
CLASS_ROSTER_ENDPOINT = "api/v1/Matricula/Turma"
QUALIFICATION_ENDPOINT = "api/v1/CursoQualificacao"


@dataclass(frozen=True)
class DateRange:
    """Inclusive bounds for a date-bounded fetch."""
    date_from: date
    date_to: date

    def contains(self, value: Optional[date]) -> bool:
        return value is not None and self.date_from <= value <= self.date_to


class EntityAdapter(ABC):
    """Capability interface for one entity type."""

    entity_type: EntityType
    model: Type[PartnerRecordMixin]
    remote_model: Type[RemoteRecord]
    key_alias: str
    fields: Tuple[str, ...]

    supports_date_range = False

    @abstractmethod
    async def fetch_remote(
        self,
        client: PartnerClient,
        db: AsyncSession,
        query: Optional[DateRange] = None
    ) -> List[Any]:
        """Return the raw remote records. Any exception is a fetch-level failure."""

    def partner_key(self, raw: Any) -> Optional[UUID]:
        return read_partner_key(raw, self.key_alias)

    async def load_references(self, db: AsyncSession) -> None:
        """Preload lookups needed by ``map_to_local``; called once per pass."""

    def decode(self, raw: Any) -> RemoteRecord:
        return self.remote_model.model_validate(raw)

    @abstractmethod
    def map_to_local(self, remote: RemoteRecord) -> Dict[str, Any]:
        """Local column values for ``fields``. Raises on a missing reference."""

    def new_record(self, id_partner: UUID, values: Dict[str, Any]) -> PartnerRecordMixin:
        return self.model(id_partner=id_partner, **values)


class CourseAdapter(EntityAdapter):
    entity_type = EntityType.COURSE
    model = Course
    remote_model = RemoteCourse
    key_alias = "idCurso"
    fields = ("name", "workload", "description", "modality_id", "active")

    async def fetch_remote(self, client, db, query=None):
        # Programs wrap the courses; the body may be a JSON-encoded string
        payload = await client.get(COURSES_ENDPOINT, collection=True)
        courses: List[Any] = []
        for program in unwrap_json_list(payload, COURSES_ENDPOINT):
            if not isinstance(program, dict):
                raise DecodeError(
                    f"Unexpected program entry from {COURSES_ENDPOINT}: {program!r}",
                    endpoint=COURSES_ENDPOINT
                )
            courses.extend(program.get("cursos") or [])

        logger.info(f"Retrieved {len(courses)} courses from CETTPRO")
        return courses

    def map_to_local(self, remote: RemoteCourse) -> Dict[str, Any]:
        return {
            "name": remote.name,
            "workload": remote.workload,
            "description": remote.description,
            "modality_id": remote.modality_id,
            "active": remote.active,
        }


class ClassAdapter(EntityAdapter):
    entity_type = EntityType.CLASS
    model = CourseClass
    remote_model = RemoteClass
    key_alias = "idTurma"
    fields = ("name", "start_date", "end_date", "status", "course_id")

    supports_date_range = True

    def __init__(self):
        self._course_ids: Dict[UUID, int] = {}

    async def fetch_remote(self, client, db, query=None):
        if query is None:
            classes = unwrap_json_list(
                await client.get(CLASSES_ENDPOINT, collection=True),
                CLASSES_ENDPOINT
            )
        else:
            classes = await self._fetch_qualification_classes(client, query)

        logger.info(f"Retrieved {len(classes)} classes from CETTPRO")
        return classes

    async def _fetch_qualification_classes(self, client: PartnerClient, query: DateRange) -> List[Any]:
        payload = await client.send("POST", QUALIFICATION_ENDPOINT, {}, collection=True)
        classes: List[Any] = []
        for course in unwrap_json_list(payload, QUALIFICATION_ENDPOINT):
            if not isinstance(course, dict):
                raise DecodeError(
                    f"Unexpected course entry from {QUALIFICATION_ENDPOINT}: {course!r}",
                    endpoint=QUALIFICATION_ENDPOINT
                )
            owner = {"idCurso": course.get("idCurso"), "nomeCurso": course.get("nomeCurso")}
            for turma in course.get("turmas") or []:
                if not isinstance(turma, dict):
                    continue
                if not query.contains(parse_lenient_date(turma.get("dataInicio"))):
                    continue
                # Classes nested under a course carry no course list of their own
                classes.append({**turma, "cursos": [owner]})
        return classes

    async def load_references(self, db):
        self._course_ids = await PartnerRecordStore(db, Course).active_ids_by_partner_id()

    def map_to_local(self, remote: RemoteClass) -> Dict[str, Any]:
        course_partner_id = remote.course_partner_id
        if course_partner_id is None:
            raise MissingReferenceError(f"class {remote.id_partner} lists no course")

        course_id = self._course_ids.get(course_partner_id)
        if course_id is None:
            raise MissingReferenceError(
                f"course {course_partner_id} of class {remote.id_partner} is not synced"
            )

        return {
            "name": remote.name,
            "start_date": remote.start_date,
            "end_date": remote.end_date,
            "status": remote.status,
            "course_id": course_id,
        }


class RosterSource:
    """Class rosters fetched once per run and shared by the student and
    enrollment stages. Failed fetches are not cached."""

    def __init__(self):
        self._rosters: Optional[List[Tuple[UUID, Dict[str, Any]]]] = None

    async def rosters(self, client: PartnerClient, db: AsyncSession) -> List[Tuple[UUID, Dict[str, Any]]]:
        """
        Roster of every active local class.

        Returns:
            List of ``(class id_partner, roster payload)``; classes without a
            roster are skipped
        """
        if self._rosters is not None:
            return self._rosters

        classes = await PartnerRecordStore(db, CourseClass).list_active()
        rosters: List[Tuple[UUID, Dict[str, Any]]] = []
        for course_class in classes:
            payload = await client.get(
                CLASS_ROSTER_ENDPOINT,
                params={"idTurma": str(course_class.id_partner)},
                collection=True
            )
            for roster in unwrap_json_list(payload, CLASS_ROSTER_ENDPOINT):
                if not isinstance(roster, dict):
                    raise DecodeError(
                        f"Unexpected roster entry for class {course_class.id_partner}: {roster!r}",
                        endpoint=CLASS_ROSTER_ENDPOINT
                    )
                rosters.append((course_class.id_partner, roster))

        logger.info(f"Retrieved rosters for {len(classes)} classes from CETTPRO")
        self._rosters = rosters
        return rosters

    async def enrollments(self, client: PartnerClient, db: AsyncSession) -> List[Any]:
        records: List[Any] = []
        for class_partner_id, roster in await self.rosters(client, db):
            class_key = roster.get("idTurma") or str(class_partner_id)
            for enrollment in roster.get("matriculas") or []:
                if isinstance(enrollment, dict):
                    enrollment = {**enrollment, "idTurma": class_key}
                records.append(enrollment)
        return records


class StudentAdapter(EntityAdapter):
    entity_type = EntityType.STUDENT
    model = Student
    remote_model = RemoteStudent
    key_alias = "idAluno"
    fields = (
        "name", "social_name", "father_name", "mother_name", "cpf", "rg",
        "municipality_id", "birth_date", "gender", "sex", "nationality",
        "marital_status", "race", "email",
    )

    def __init__(self, roster_source: Optional[RosterSource] = None):
        self.roster_source = roster_source or RosterSource()

    async def fetch_remote(self, client, db, query=None):
        students: List[Any] = []
        seen = set()
        for enrollment in await self.roster_source.enrollments(client, db):
            if not isinstance(enrollment, dict):
                continue
            for student in enrollment.get("alunos") or []:
                key = self.partner_key(student)
                if key is not None:
                    # A student enrolled in several classes is listed once
                    if key in seen:
                        continue
                    seen.add(key)
                students.append(student)

        logger.info(f"Retrieved {len(students)} students from CETTPRO rosters")
        return students

    def map_to_local(self, remote: RemoteStudent) -> Dict[str, Any]:
        return {name: getattr(remote, name) for name in self.fields}


class EnrollmentAdapter(EntityAdapter):
    entity_type = EntityType.ENROLLMENT
    model = Enrollment
    remote_model = RemoteEnrollment
    key_alias = "idMatricula"
    fields = ("status", "student_id", "class_id")

    def __init__(self, roster_source: Optional[RosterSource] = None):
        self.roster_source = roster_source or RosterSource()
        self._student_ids: Dict[UUID, int] = {}
        self._class_ids: Dict[UUID, int] = {}

    async def fetch_remote(self, client, db, query=None):
        enrollments = await self.roster_source.enrollments(client, db)
        logger.info(f"Retrieved {len(enrollments)} enrollments from CETTPRO rosters")
        return enrollments

    async def load_references(self, db):
        self._student_ids = await PartnerRecordStore(db, Student).active_ids_by_partner_id()
        self._class_ids = await PartnerRecordStore(db, CourseClass).active_ids_by_partner_id()

    def map_to_local(self, remote: RemoteEnrollment) -> Dict[str, Any]:
        student_partner_id = remote.student_partner_id
        if student_partner_id is None:
            raise MissingReferenceError(f"enrollment {remote.id_partner} lists no student")

        student_id = self._student_ids.get(student_partner_id)
        if student_id is None:
            raise MissingReferenceError(
                f"student {student_partner_id} of enrollment {remote.id_partner} is not synced"
            )

        class_id = self._class_ids.get(remote.class_partner_id)
        if class_id is None:
            raise MissingReferenceError(
                f"class {remote.class_partner_id} of enrollment {remote.id_partner} is not synced"
            )

        return {"status": remote.status, "student_id": student_id, "class_id": class_id}

    def new_record(self, id_partner, values):
        return Enrollment(id_partner=id_partner, enrolled_at=datetime.utcnow(), **values)


def build_adapters(roster_source: Optional[RosterSource] = None) -> Dict[EntityType, EntityAdapter]:
    """One adapter per entity type, in dependency order."""
    roster_source = roster_source or RosterSource()
    return {
        EntityType.COURSE: CourseAdapter(),
        EntityType.CLASS: ClassAdapter(),
        EntityType.STUDENT: StudentAdapter(roster_source),
        EntityType.ENROLLMENT: EnrollmentAdapter(roster_source),
    }
