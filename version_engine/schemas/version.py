"""Version payload, snapshot and read-model schemas."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from version_engine.domain import ChangeType, ContentType, VersionType
from version_engine.models import ContentVersion

# Payload fields that carry content (as opposed to change_summary / flags).
CONTENT_FIELDS = ("title", "slug", "body", "excerpt", "structured_data", "metadata")


class VersionCreate(BaseModel):
    """
    Input for a new version. Omitted fields are "not provided" and carry over from the
    previous version; an explicit null clears the field.
    Length rules are enforced by the engine, not here, so they surface as VALIDATION_FAILED.
    """

    title: Optional[str] = None
    slug: Optional[str] = None
    body: Optional[str] = None
    excerpt: Optional[str] = None
    structured_data: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    change_summary: Optional[str] = None
    content_hash: Optional[str] = Field(None, description="Caller-computed hash (auto-save dedup)")
    is_current_draft: bool = False

    def provided_content(self) -> Dict[str, Any]:
        """Content fields explicitly set by the caller (None included)."""
        return self.model_dump(exclude_unset=True, include=set(CONTENT_FIELDS))


class VersionOut(BaseModel):
    """A stored version."""

    id: UUID
    tenant_id: UUID
    content_type: ContentType
    content_id: UUID
    version_number: int
    version_type: VersionType
    is_current_draft: bool
    is_current_published: bool
    title: str
    slug: Optional[str] = None
    body: Optional[str] = None
    excerpt: Optional[str] = None
    structured_data: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    change_summary: Optional[str] = None
    changed_fields: List[str] = []
    content_hash: Optional[str] = None
    created_by: str
    created_at: Optional[datetime] = None
    published_by: Optional[str] = None
    published_at: Optional[datetime] = None


def to_version_out(row: ContentVersion) -> VersionOut:
    return VersionOut(
        id=row.id,
        tenant_id=row.tenant_id,
        content_type=row.content_type,
        content_id=row.content_id,
        version_number=row.version_number,
        version_type=row.version_type,
        is_current_draft=row.is_current_draft,
        is_current_published=row.is_current_published,
        title=row.title,
        slug=row.slug,
        body=row.body,
        excerpt=row.excerpt,
        structured_data=row.structured_data,
        metadata=row.metadata_,
        change_summary=row.change_summary,
        changed_fields=list(row.changed_fields or []),
        content_hash=row.content_hash,
        created_by=row.created_by,
        created_at=row.created_at,
        published_by=row.published_by,
        published_at=row.published_at,
    )


class FieldChange(BaseModel):
    """One field's old/new value between two snapshots."""

    field: str
    old_value: Any = None
    new_value: Any = None
    change_type: ChangeType


class ComparisonSummary(BaseModel):
    fields_changed: int
    total_changes: int = 0
    added: int = 0
    modified: int = 0
    deleted: int = 0


DiffGranularity = Literal["line", "word", "character"]


class TextChange(BaseModel):
    """One added/removed run of body text. Line numbers are 1-based and only set at line granularity."""

    type: Literal["add", "remove"]
    content: str
    line_number_old: Optional[int] = None
    line_number_new: Optional[int] = None


class DiffHunk(BaseModel):
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    changes: List[TextChange]


class TextDiff(BaseModel):
    granularity: DiffGranularity = "line"
    hunks: List[DiffHunk] = Field(default_factory=list)
    changes: List[TextChange] = Field(default_factory=list)
    lines_added: int = 0
    lines_removed: int = 0
    lines_modified: int = 0
    similarity_ratio: float = 1.0


class ChangeStatistics(BaseModel):
    total_changes: int
    lines_added: int
    lines_removed: int
    lines_modified: int
    characters_added: int
    characters_removed: int
    words_added: int
    words_removed: int
    change_percent: float
    complexity_score: int
    review_time_minutes: int
    major_changes: List[str] = Field(default_factory=list)


class VersionComparison(BaseModel):
    version_a: VersionOut
    version_b: VersionOut
    diffs: List[FieldChange]
    summary: ComparisonSummary
    text_diff: Optional[TextDiff] = None
    statistics: Optional[ChangeStatistics] = None


class VersionFeedback(BaseModel):
    """Reviewer/editor reaction to a version (e.g. an AI-assisted draft)."""

    signal: Literal["positive", "negative", "neutral"]
    comment: Optional[str] = Field(None, max_length=2000)
    prompt_snapshot: Optional[str] = None
    suggestion_snapshot: Optional[str] = None
    preset: Optional[str] = Field(None, max_length=100)


class HistoryOptions(BaseModel):
    """Paging and filters for version history."""

    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)
    include_auto_saves: bool = True
    published_only: bool = False
    version_type: Optional[VersionType] = None
    order_by: Literal["version_number", "created_at"] = "version_number"
    order_direction: Literal["asc", "desc"] = "desc"


class VersionHistory(BaseModel):
    versions: List[VersionOut]
    total: int
    limit: int
    offset: int


class VersionMetrics(BaseModel):
    """Aggregate counters for a tenant, content type or single content item."""

    total_versions: int = 0
    draft_count: int = 0
    published_count: int = 0
    auto_save_count: int = 0
    last_activity: Optional[datetime] = None
    storage_size_bytes: int = 0


class LatestAutoSave(BaseModel):
    version: Optional[VersionOut] = None
    has_newer_manual_save: bool = False


class AutoSaveStatus(BaseModel):
    has_unsaved_changes: bool
    latest_version_number: int = 0


class PruneResult(BaseModel):
    deleted_count: int
