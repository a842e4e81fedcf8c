"""
Remote record shapes returned by the CETTPRO API.

Partner payloads are inconsistent across endpoints, so decoding is permissive:
number-or-string fields become normalized strings, empty or malformed optional
identifiers become ``None`` and dates accept either a date or a datetime.
Identifiers used as join keys stay strict; a record without a valid one fails
to decode.
"""

import json
from datetime import date, datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from api_integracao.integrations.cettpro.errors import DecodeError


def normalize_number_or_string(value: Any) -> Optional[str]:
    """``40`` -> ``"40"``, ``40.5`` -> ``"40.5"``, ``" 40h "`` -> ``"40h"``, ``None`` -> ``None``."""
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    raise ValueError(f"expected number or string, got {type(value).__name__}")


def parse_optional_uuid(value: Any) -> Optional[UUID]:
    """Empty or unparseable identifiers decode to ``None``."""
    if value is None or isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value.strip())
        except ValueError:
            return None
    return None


def parse_lenient_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(text.replace('Z', '+00:00')).date()
        except ValueError:
            pass
        for fmt in ('%Y-%m-%d', '%d/%m/%Y'):
            try:
                return datetime.strptime(text[:10], fmt).date()
            except ValueError:
                continue
    return None


def coerce_code(value: Any) -> int:
    """Coded enum-like values; ``null`` means 0."""
    if value is None or value == '':
        return 0
    return int(value)


class RemoteRecord(BaseModel):
    """Immutable value decoded from one partner record."""

    model_config = ConfigDict(populate_by_name=True, extra='ignore', frozen=True)


class RemoteCourse(RemoteRecord):
    id_partner: UUID = Field(alias='idCurso')
    name: str = Field(alias='nomeCurso')
    workload: Optional[str] = Field(default=None, alias='cargaHoraria')
    description: Optional[str] = Field(default=None, alias='descricao')
    active: bool = Field(default=True, alias='ativo')
    modality_id: Optional[UUID] = Field(default=None, alias='modalidadeId')

    @field_validator('workload', mode='before')
    @classmethod
    def normalize_workload(cls, v):
        return normalize_number_or_string(v)

    @field_validator('modality_id', mode='before')
    @classmethod
    def normalize_modality(cls, v):
        return parse_optional_uuid(v)


class RemoteClassCourse(RemoteRecord):
    id_partner: UUID = Field(alias='idCurso')
    name: Optional[str] = Field(default=None, alias='nomeCurso')


class RemoteClass(RemoteRecord):
    id_partner: UUID = Field(alias='idTurma')
    name: str = Field(alias='nome')
    start_date: Optional[date] = Field(default=None, alias='dataInicio')
    end_date: Optional[date] = Field(default=None, alias='dataTermino')
    status: int = Field(default=0, alias='status')
    courses: List[RemoteClassCourse] = Field(default_factory=list, alias='cursos')

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def parse_dates(cls, v):
        return parse_lenient_date(v)

    @field_validator('status', mode='before')
    @classmethod
    def parse_status(cls, v):
        return coerce_code(v)

    @field_validator('courses', mode='before')
    @classmethod
    def default_courses(cls, v):
        return v or []

    @property
    def course_partner_id(self) -> Optional[UUID]:
        """The first listed course owns the class."""
        return self.courses[0].id_partner if self.courses else None


class RemoteStudent(RemoteRecord):
    id_partner: UUID = Field(alias='idAluno')
    name: str = Field(alias='nome')
    social_name: Optional[str] = Field(default=None, alias='nomeSocial')
    father_name: Optional[str] = Field(default=None, alias='nomePai')
    mother_name: Optional[str] = Field(default=None, alias='nomeMae')
    cpf: Optional[str] = Field(default=None, alias='cpf')
    rg: Optional[str] = Field(default=None, alias='rg')
    municipality_id: Optional[UUID] = Field(default=None, alias='municipioId')
    birth_date: Optional[date] = Field(default=None, alias='dataNascimento')
    gender: int = Field(default=0, alias='genero')
    sex: int = Field(default=0, alias='sexo')
    nationality: Optional[str] = Field(default=None, alias='nacionalidade')
    marital_status: int = Field(default=0, alias='estadoCivil')
    race: int = Field(default=0, alias='raca')
    email: Optional[str] = Field(default=None, alias='eMail')

    @field_validator('social_name', 'father_name', 'mother_name', 'cpf', 'rg', 'nationality', 'email', mode='before')
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator('cpf', 'rg', mode='before')
    @classmethod
    def normalize_documents(cls, v):
        return normalize_number_or_string(v)

    @field_validator('municipality_id', mode='before')
    @classmethod
    def normalize_municipality(cls, v):
        return parse_optional_uuid(v)

    @field_validator('birth_date', mode='before')
    @classmethod
    def parse_birth_date(cls, v):
        return parse_lenient_date(v)

    @field_validator('gender', 'sex', 'marital_status', 'race', mode='before')
    @classmethod
    def parse_codes(cls, v):
        return coerce_code(v)


class RemoteStudentRef(RemoteRecord):
    id_partner: UUID = Field(alias='idAluno')


class RemoteEnrollment(RemoteRecord):
    """Enrollment row from a class roster, bound to that roster's class."""

    id_partner: UUID = Field(alias='idMatricula')
    status: int = Field(default=0, alias='status')
    class_partner_id: UUID = Field(alias='idTurma')
    students: List[RemoteStudentRef] = Field(default_factory=list, alias='alunos')

    @field_validator('status', mode='before')
    @classmethod
    def parse_status(cls, v):
        return coerce_code(v)

    @field_validator('students', mode='before')
    @classmethod
    def default_students(cls, v):
        return v or []

    @property
    def student_partner_id(self) -> Optional[UUID]:
        return self.students[0].id_partner if self.students else None


def unwrap_json_list(payload: Any, endpoint: str) -> List[Any]:
    """
    Normalize a collection payload into a list.

    Some endpoints return the JSON array serialized inside a JSON string, and
    some return a single object where a list is expected.

    Args:
        payload: Decoded response body
        endpoint: Endpoint name, for error messages

    Returns:
        List of raw records
    """
    if payload is None:
        return []
    if isinstance(payload, str):
        if not payload.strip():
            return []
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise DecodeError(
                f"Invalid JSON string payload from {endpoint}: {e}",
                endpoint=endpoint,
                original_exception=e
            ) from e
    if isinstance(payload, dict):
        return [payload]
    if isinstance(payload, list):
        return payload
    raise DecodeError(
        f"Expected a list from {endpoint}, got {type(payload).__name__}",
        endpoint=endpoint
    )


def read_partner_key(raw: Any, alias: str) -> Optional[UUID]:
    """Read the join key from a raw record without decoding the rest of it."""
    if not isinstance(raw, dict):
        return None
    value = raw.get(alias)
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value)
        except ValueError:
            return None
    return None
