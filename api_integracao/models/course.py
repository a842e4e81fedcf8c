"""
Course and class models mirrored from the CETTPRO catalogue.
"""

from sqlalchemy import Column, Integer, String, Boolean, Date, Text, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from api_integracao.core.database import Base
from api_integracao.models.base import PartnerRecordMixin


class Course(PartnerRecordMixin, Base):
    """Course offered by the partner (``Curso``)."""

    __tablename__ = "courses"

    name = Column(String(255), nullable=False)
    workload = Column(String(50), nullable=True)  # "cargaHoraria", kept as text
    description = Column(Text, nullable=True)
    modality_id = Column(Uuid(as_uuid=True), nullable=True)
    active = Column(Boolean, default=True, nullable=False)

    classes = relationship("CourseClass", back_populates="course")

    def __repr__(self):
        return f"<Course(id={self.id}, id_partner={self.id_partner}, name='{self.name}')>"


class CourseClass(PartnerRecordMixin, Base):
    """Class (``Turma``) belonging to one course."""

    __tablename__ = "classes"

    name = Column(String(255), nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    status = Column(Integer, default=0, nullable=False)

    course_id = Column(
        Integer,
        ForeignKey("courses.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    course = relationship("Course", back_populates="classes")
    enrollments = relationship("Enrollment", back_populates="course_class")

    def __repr__(self):
        return f"<CourseClass(id={self.id}, id_partner={self.id_partner}, name='{self.name}')>"
