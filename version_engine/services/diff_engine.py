"""
Field-level diff between version snapshots. Pure functions, no store access.

Snapshot = mapping with title, slug, body, excerpt, structured_data, metadata.
Only whitelisted keys of structured_data / metadata are compared; other keys pass through.
"""
from typing import Any, Dict, List, Mapping, Optional

from version_engine.domain import ChangeType
from version_engine.models import ContentVersion
from version_engine.schemas.version import ComparisonSummary, FieldChange, VersionOut

INITIAL_VERSION = "initial_version"

DIRECT_FIELDS = ("title", "slug", "body", "excerpt")
STRUCTURED_DATA_KEYS = (
    "category_id",
    "status",
    "featured_image",
    "template",
    "parent_id",
    "order_index",
    "is_homepage",
)
METADATA_KEYS = ("meta_title", "meta_description", "og_image")

_NOT_PROVIDED = object()


def snapshot_of(version: ContentVersion | VersionOut) -> Dict[str, Any]:
    """Comparable snapshot of a stored version (ORM row or read model)."""
    metadata = version.metadata_ if isinstance(version, ContentVersion) else version.metadata
    return {
        "title": version.title,
        "slug": version.slug,
        "body": version.body,
        "excerpt": version.excerpt,
        "structured_data": version.structured_data,
        "metadata": metadata,
    }


def _differs(old: Any, new: Any) -> bool:
    # 1 vs True vs "1" are different values.
    return type(old) is not type(new) or old != new


def _classify(field: str, old: Any, new: Any) -> Optional[FieldChange]:
    if new is _NOT_PROVIDED:
        return None
    if old is None and new is None:
        return None
    if old is None:
        return FieldChange(field=field, old_value=None, new_value=new, change_type=ChangeType.ADDED)
    if new is None:
        return FieldChange(field=field, old_value=old, new_value=None, change_type=ChangeType.DELETED)
    if _differs(old, new):
        return FieldChange(field=field, old_value=old, new_value=new, change_type=ChangeType.MODIFIED)
    return None


def _document_changes(
    prefix: str,
    keys: tuple,
    old_doc: Optional[Mapping[str, Any]],
    new_doc: Any,
) -> List[FieldChange]:
    if new_doc is _NOT_PROVIDED:
        return []
    old_doc = old_doc or {}
    # A provided document replaces the stored one; explicit null clears it.
    new_doc = new_doc or {}
    changes = []
    for key in keys:
        change = _classify(f"{prefix}.{key}", old_doc.get(key), new_doc.get(key))
        if change is not None:
            changes.append(change)
    return changes


def diff(prior: Optional[Mapping[str, Any]], payload: Mapping[str, Any]) -> List[FieldChange]:
    """
    Changes from `prior` snapshot to `payload`.
    Keys absent from payload are "not provided" and never reported. A key present with None
    means the field was cleared. With no prior snapshot, returns the single initial_version entry.
    """
    if prior is None:
        return [FieldChange(field=INITIAL_VERSION, change_type=ChangeType.ADDED)]

    changes: List[FieldChange] = []
    for field in DIRECT_FIELDS:
        change = _classify(field, prior.get(field), payload.get(field, _NOT_PROVIDED))
        if change is not None:
            changes.append(change)
    changes.extend(
        _document_changes(
            "structured_data",
            STRUCTURED_DATA_KEYS,
            prior.get("structured_data"),
            payload.get("structured_data", _NOT_PROVIDED),
        )
    )
    changes.extend(
        _document_changes(
            "metadata",
            METADATA_KEYS,
            prior.get("metadata"),
            payload.get("metadata", _NOT_PROVIDED),
        )
    )
    return changes


def changed_field_names(changes: List[FieldChange]) -> List[str]:
    return [c.field for c in changes]


def compare_snapshots(a: Mapping[str, Any], b: Mapping[str, Any]) -> List[FieldChange]:
    """Diff two full snapshots; every field counts as provided, so compare(a, b) and compare(b, a) name the same fields."""
    full_b = {field: b.get(field) for field in DIRECT_FIELDS + ("structured_data", "metadata")}
    return diff(a, full_b)


def summarize(changes: List[FieldChange]) -> ComparisonSummary:
    """fields_changed counts top-level fields (structured_data.* counts once); total_changes counts entries."""
    top_level = {c.field.split(".", 1)[0] for c in changes}
    return ComparisonSummary(
        fields_changed=len(top_level),
        total_changes=len(changes),
        added=sum(1 for c in changes if c.change_type == ChangeType.ADDED),
        modified=sum(1 for c in changes if c.change_type == ChangeType.MODIFIED),
        deleted=sum(1 for c in changes if c.change_type == ChangeType.DELETED),
    )
