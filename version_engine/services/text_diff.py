"""
Body text diff at line, word or character granularity (difflib), plus review statistics.
Pure functions; the field-level comparison lives in diff_engine.
"""
import difflib
import math
import re
from typing import List, Optional

from version_engine.schemas.version import ChangeStatistics, DiffGranularity, DiffHunk, FieldChange, TextChange, TextDiff

# Words and the whitespace between them, so joined tokens rebuild the text exactly.
WORD_TOKENS = re.compile(r"\s+|\S+")
MAJOR_LINE_CHANGES = 10
MAJOR_CHANGE_PERCENT = 50


def _tokens(text: str, granularity: DiffGranularity) -> List[str]:
    if not text:
        return []
    if granularity == "line":
        return text.split("\n")
    if granularity == "word":
        return WORD_TOKENS.findall(text)
    return list(text)


def generate_text_diff(
    old_text: Optional[str],
    new_text: Optional[str],
    granularity: DiffGranularity = "line",
) -> TextDiff:
    """
    Line granularity yields hunks with 1-based line numbers; a replaced block counts its paired
    lines as modified and the rest as added/removed. Word and character granularity yield runs.
    """
    old_tokens = _tokens(old_text or "", granularity)
    new_tokens = _tokens(new_text or "", granularity)
    matcher = difflib.SequenceMatcher(None, old_tokens, new_tokens, autojunk=False)

    hunks: List[DiffHunk] = []
    changes: List[TextChange] = []
    added = removed = modified = 0
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        if granularity != "line":
            if i2 > i1:
                changes.append(TextChange(type="remove", content="".join(old_tokens[i1:i2])))
            if j2 > j1:
                changes.append(TextChange(type="add", content="".join(new_tokens[j1:j2])))
            continue

        hunk_changes = [
            TextChange(type="remove", content=old_tokens[i], line_number_old=i + 1) for i in range(i1, i2)
        ] + [TextChange(type="add", content=new_tokens[j], line_number_new=j + 1) for j in range(j1, j2)]
        hunks.append(
            DiffHunk(old_start=i1 + 1, old_lines=i2 - i1, new_start=j1 + 1, new_lines=j2 - j1, changes=hunk_changes)
        )
        changes.extend(hunk_changes)
        paired = min(i2 - i1, j2 - j1) if tag == "replace" else 0
        modified += paired
        removed += (i2 - i1) - paired
        added += (j2 - j1) - paired

    return TextDiff(
        granularity=granularity,
        hunks=hunks,
        changes=changes,
        lines_added=added,
        lines_removed=removed,
        lines_modified=modified,
        similarity_ratio=round(matcher.ratio(), 4),
    )


def change_statistics(
    text_diff: TextDiff,
    field_changes: List[FieldChange],
    old_body: Optional[str],
    new_body: Optional[str],
) -> ChangeStatistics:
    """Size of the change between two bodies plus the non-body field changes, with a rough review estimate."""
    old_body = old_body or ""
    new_body = new_body or ""
    other_fields = [c for c in field_changes if c.field != "body"]

    old_words, new_words = len(old_body.split()), len(new_body.split())
    words_added = max(0, new_words - old_words)
    total_changes = len(text_diff.changes) + len(other_fields)
    if old_body:
        change_percent = abs(len(new_body) - len(old_body)) / len(old_body) * 100
    else:
        change_percent = 100.0 if new_body else 0.0
    complexity = (
        text_diff.lines_modified * 2 + text_diff.lines_added + text_diff.lines_removed + len(other_fields)
    )

    changed = {c.field for c in other_fields}
    major: List[str] = []
    if "title" in changed:
        major.append("Title changed")
    if "slug" in changed:
        major.append("URL slug modified")
    if text_diff.lines_added > MAJOR_LINE_CHANGES:
        major.append(f"{text_diff.lines_added} lines added")
    if text_diff.lines_removed > MAJOR_LINE_CHANGES:
        major.append(f"{text_diff.lines_removed} lines removed")
    if change_percent > MAJOR_CHANGE_PERCENT:
        major.append("Major content revision")

    return ChangeStatistics(
        total_changes=total_changes,
        lines_added=text_diff.lines_added,
        lines_removed=text_diff.lines_removed,
        lines_modified=text_diff.lines_modified,
        characters_added=max(0, len(new_body) - len(old_body)),
        characters_removed=max(0, len(old_body) - len(new_body)),
        words_added=words_added,
        words_removed=max(0, old_words - new_words),
        change_percent=round(change_percent, 1),
        complexity_score=complexity,
        review_time_minutes=math.ceil(total_changes * 0.5 + words_added * 0.01 + complexity * 0.1),
        major_changes=major,
    )
