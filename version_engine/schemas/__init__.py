"""Pydantic request/response schemas."""
from version_engine.schemas.common import ServiceResult
from version_engine.schemas.version import (
    AutoSaveStatus,
    ChangeStatistics,
    ComparisonSummary,
    DiffHunk,
    FieldChange,
    HistoryOptions,
    LatestAutoSave,
    PruneResult,
    TextChange,
    TextDiff,
    VersionComparison,
    VersionCreate,
    VersionFeedback,
    VersionHistory,
    VersionMetrics,
    VersionOut,
    to_version_out,
)
from version_engine.schemas.audit import AuditEntriesResponse, AuditEntryOut

__all__ = [
    "ServiceResult",
    "AutoSaveStatus",
    "ChangeStatistics",
    "ComparisonSummary",
    "DiffHunk",
    "FieldChange",
    "HistoryOptions",
    "LatestAutoSave",
    "PruneResult",
    "TextChange",
    "TextDiff",
    "VersionComparison",
    "VersionCreate",
    "VersionFeedback",
    "VersionHistory",
    "VersionMetrics",
    "VersionOut",
    "to_version_out",
    "AuditEntriesResponse",
    "AuditEntryOut",
]
