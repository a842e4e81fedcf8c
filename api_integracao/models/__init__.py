from .base import PartnerRecordMixin
from .course import Course, CourseClass
from .student import Student, Enrollment
from .sync_log import SyncLog, SyncOperation, EntityType

__all__ = [
    "PartnerRecordMixin",
    "Course",
    "CourseClass",
    "Student",
    "Enrollment",
    "SyncLog",
    "SyncOperation",
    "EntityType",
]
