"""Content hash used for auto-save change detection (sha256 over title, body, excerpt, structured_data)."""
import hashlib
import json
from typing import Any, Dict, Mapping, Optional


def compute_content_hash(
    title: Optional[str] = None,
    body: Optional[str] = None,
    excerpt: Optional[str] = None,
    structured_data: Optional[Dict[str, Any]] = None,
) -> str:
    """Stable hex digest; slug and metadata do not count as content changes."""
    document = {
        "title": title,
        "body": body,
        "excerpt": excerpt,
        "structured_data": structured_data,
    }
    raw = json.dumps(document, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def hash_snapshot(snapshot: Mapping[str, Any]) -> str:
    return compute_content_hash(
        title=snapshot.get("title"),
        body=snapshot.get("body"),
        excerpt=snapshot.get("excerpt"),
        structured_data=snapshot.get("structured_data"),
    )
