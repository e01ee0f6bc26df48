"""
Body text diff and change statistics: pure functions, no store.
Run: pytest tests/test_text_diff.py -v
"""
from version_engine.domain import ChangeType
from version_engine.schemas.version import FieldChange
from version_engine.services.text_diff import change_statistics, generate_text_diff


def test_identical_text_has_no_changes() -> None:
    result = generate_text_diff("a\nb", "a\nb")
    assert result.changes == []
    assert result.hunks == []
    assert result.similarity_ratio == 1.0


def test_empty_texts_are_identical() -> None:
    result = generate_text_diff(None, "")
    assert result.changes == []
    assert result.similarity_ratio == 1.0


def test_appended_line_is_one_hunk() -> None:
    result = generate_text_diff("a\nb", "a\nb\nc")
    assert result.lines_added == 1
    assert result.lines_removed == 0
    assert result.lines_modified == 0
    [hunk] = result.hunks
    assert (hunk.old_start, hunk.old_lines, hunk.new_start, hunk.new_lines) == (3, 0, 3, 1)
    assert hunk.changes[0].type == "add"
    assert hunk.changes[0].content == "c"
    assert hunk.changes[0].line_number_new == 3


def test_removed_line_keeps_old_line_number() -> None:
    result = generate_text_diff("a\nb\nc", "a\nc")
    assert result.lines_removed == 1
    [change] = result.changes
    assert change.type == "remove"
    assert change.content == "b"
    assert change.line_number_old == 2


def test_replaced_line_counts_as_modified() -> None:
    result = generate_text_diff("a\nb\nc", "a\nB\nc")
    assert result.lines_modified == 1
    assert result.lines_added == 0
    assert result.lines_removed == 0
    assert [c.type for c in result.changes] == ["remove", "add"]


def test_character_granularity_runs() -> None:
    result = generate_text_diff("cat", "cut", granularity="character")
    assert result.granularity == "character"
    assert result.hunks == []
    assert [(c.type, c.content) for c in result.changes] == [("remove", "a"), ("add", "u")]


def test_word_granularity_runs() -> None:
    result = generate_text_diff("the quick fox", "the slow fox", granularity="word")
    assert [(c.type, c.content) for c in result.changes] == [("remove", "quick"), ("add", "slow")]


def test_statistics_count_words_characters_and_fields() -> None:
    old, new = "one two", "one two three four"
    text = generate_text_diff(old, new)
    fields = [
        FieldChange(field="title", old_value="A", new_value="B", change_type=ChangeType.MODIFIED),
        FieldChange(field="body", old_value=old, new_value=new, change_type=ChangeType.MODIFIED),
    ]
    stats = change_statistics(text, fields, old, new)
    assert stats.words_added == 2
    assert stats.words_removed == 0
    assert stats.characters_added == len(new) - len(old)
    assert stats.total_changes == len(text.changes) + 1
    assert stats.complexity_score == 2 + 1
    assert "Title changed" in stats.major_changes
    assert "Major content revision" in stats.major_changes


def test_statistics_flag_large_additions() -> None:
    old = "intro"
    new = "intro\n" + "\n".join(f"line {i}" for i in range(12))
    stats = change_statistics(generate_text_diff(old, new), [], old, new)
    assert stats.lines_added == 12
    assert "12 lines added" in stats.major_changes
    assert stats.review_time_minutes >= 1


def test_statistics_from_empty_body() -> None:
    stats = change_statistics(generate_text_diff(None, "hello"), [], None, "hello")
    assert stats.change_percent == 100.0
    stats = change_statistics(generate_text_diff(None, None), [], None, None)
    assert stats.change_percent == 0.0
    assert stats.total_changes == 0
    assert stats.review_time_minutes == 0
