"""Render a VersionComparison as a JSON document or a standalone HTML page."""
import html
import json
from typing import Any, Dict

from version_engine.errors import ValidationFailed
from version_engine.schemas.version import VersionComparison, VersionOut

EXPORT_FORMATS = ("json", "html")


def _version_header(version: VersionOut) -> Dict[str, Any]:
    return {
        "id": str(version.id),
        "version_number": version.version_number,
        "title": version.title,
        "created_at": version.created_at.isoformat() if version.created_at else None,
    }


def export_json(comparison: VersionComparison, include_statistics: bool = True) -> str:
    document: Dict[str, Any] = {
        "left_version": _version_header(comparison.version_a),
        "right_version": _version_header(comparison.version_b),
        "field_changes": [c.model_dump(mode="json") for c in comparison.diffs],
        "summary": comparison.summary.model_dump(mode="json"),
        "changes": [c.model_dump(mode="json") for c in comparison.text_diff.changes]
        if comparison.text_diff
        else [],
    }
    if include_statistics and comparison.statistics is not None:
        document["statistics"] = comparison.statistics.model_dump(mode="json")
    return json.dumps(document, indent=2, ensure_ascii=False, default=str)


def export_html(comparison: VersionComparison, include_statistics: bool = True) -> str:
    a, b = comparison.version_a, comparison.version_b
    parts = [
        "<!DOCTYPE html>",
        "<html><head><meta charset=\"utf-8\">",
        f"<title>Version {a.version_number} vs {b.version_number}</title>",
        "<style>.add{background:#e6ffed}.remove{background:#ffeef0;text-decoration:line-through}"
        "td,th{padding:4px 8px;text-align:left}</style>",
        "</head><body>",
        f"<h1>{html.escape(a.title or '')} (v{a.version_number}) &rarr; "
        f"{html.escape(b.title or '')} (v{b.version_number})</h1>",
    ]
    if include_statistics and comparison.statistics is not None:
        s = comparison.statistics
        parts.append(
            "<p class=\"statistics\">"
            f"{s.total_changes} changes, +{s.lines_added} / -{s.lines_removed} lines, "
            f"{s.change_percent}% size change</p>"
        )
    parts.append("<table><tr><th>Field</th><th>Change</th><th>Before</th><th>After</th></tr>")
    for change in comparison.diffs:
        parts.append(
            "<tr>"
            f"<td>{html.escape(change.field)}</td>"
            f"<td>{html.escape(change.change_type.value)}</td>"
            f"<td>{html.escape(_text(change.old_value))}</td>"
            f"<td>{html.escape(_text(change.new_value))}</td>"
            "</tr>"
        )
    parts.append("</table>")
    if comparison.text_diff is not None and comparison.text_diff.changes:
        parts.append("<pre class=\"body-diff\">")
        for change in comparison.text_diff.changes:
            marker = "+" if change.type == "add" else "-"
            parts.append(f"<span class=\"{change.type}\">{marker} {html.escape(change.content)}</span>")
        parts.append("</pre>")
    parts.append("</body></html>")
    return "\n".join(parts)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def export_comparison(comparison: VersionComparison, fmt: str, include_statistics: bool = True) -> str:
    if fmt == "json":
        return export_json(comparison, include_statistics)
    if fmt == "html":
        return export_html(comparison, include_statistics)
    raise ValidationFailed(f"Unsupported export format: {fmt}")
