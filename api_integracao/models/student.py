"""
Student and enrollment models mirrored from CETTPRO class rosters.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from api_integracao.core.database import Base
from api_integracao.models.base import PartnerRecordMixin


class Student(PartnerRecordMixin, Base):
    """Student (``Aluno``) as listed in a class roster."""

    __tablename__ = "students"

    name = Column(String(255), nullable=False)
    social_name = Column(String(255), nullable=True)
    father_name = Column(String(255), nullable=True)
    mother_name = Column(String(255), nullable=True)
    cpf = Column(String(14), nullable=True, index=True)
    rg = Column(String(20), nullable=True)
    municipality_id = Column(Uuid(as_uuid=True), nullable=True)
    birth_date = Column(Date, nullable=True)

    # Coded values as sent by the partner
    gender = Column(Integer, default=0, nullable=False)
    sex = Column(Integer, default=0, nullable=False)
    nationality = Column(String(100), nullable=True)
    marital_status = Column(Integer, default=0, nullable=False)
    race = Column(Integer, default=0, nullable=False)
    email = Column(String(255), nullable=True)

    enrollments = relationship("Enrollment", back_populates="student")

    def __repr__(self):
        return f"<Student(id={self.id}, id_partner={self.id_partner}, name='{self.name}')>"


class Enrollment(PartnerRecordMixin, Base):
    """Enrollment (``Matricula``) linking a student to a class."""

    __tablename__ = "enrollments"

    status = Column(Integer, default=0, nullable=False)
    enrolled_at = Column(DateTime, nullable=True)

    student_id = Column(
        Integer,
        ForeignKey("students.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    class_id = Column(
        Integer,
        ForeignKey("classes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    student = relationship("Student", back_populates="enrollments")
    course_class = relationship("CourseClass", back_populates="enrollments")

    def __repr__(self):
        return (
            f"<Enrollment(id={self.id}, id_partner={self.id_partner}, "
            f"student_id={self.student_id}, class_id={self.class_id})>"
        )
