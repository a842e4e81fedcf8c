"""
CETTPRO Synchronization Engine

Pulls courses, classes, students and enrollments from the CETTPRO partner API
and reconciles them with the local database.

Components:
- Generic reconciler with per-entity adapters (insert, update, soft delete)
- Orchestrator running stages in dependency order
- Append-only audit trail with data freshness queries
"""

from .result import SyncResult
from .adapters import (
    DateRange,
    EntityAdapter,
    CourseAdapter,
    ClassAdapter,
    StudentAdapter,
    EnrollmentAdapter,
    RosterSource,
    build_adapters
)
from .reconciler import EntityReconciler
from .orchestrator import SyncOrchestrator, SYNC_ORDER
from .audit import SyncAuditWriter, latest_successful_sync, latest_successful_syncs

__all__ = [
    'SyncResult',
    'DateRange',
    'EntityAdapter',
    'CourseAdapter',
    'ClassAdapter',
    'StudentAdapter',
    'EnrollmentAdapter',
    'RosterSource',
    'build_adapters',
    'EntityReconciler',
    'SyncOrchestrator',
    'SYNC_ORDER',
    'SyncAuditWriter',
    'latest_successful_sync',
    'latest_successful_syncs'
]
