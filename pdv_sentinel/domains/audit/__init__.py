"""Run audit domain."""

from .models import AuditReport, DetectionStatistics, SyncStatistics
from .recorder import AuditRecorder, get_audit_recorder

__all__ = [
    "AuditRecorder",
    "AuditReport",
    "DetectionStatistics",
    "SyncStatistics",
    "get_audit_recorder",
]
