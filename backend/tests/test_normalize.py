"""Index entry normalization tests."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from quarry.errors import IndexSyncFailure
from quarry.index.normalize import (
    format_timestamp,
    normalize_item,
    normalize_tags,
    normalize_text,
    tokenize_text,
)


class TestNormalizeText:
    """Tests for normalize_text."""

    def test_collapses_whitespace_and_controls(self):
        assert normalize_text("  Q1\x00 planning\n\tdoc  ", "body") == "Q1 planning doc"

    def test_nfc_normalizes(self):
        """Decomposed accents are composed so both forms match."""
        assert normalize_text("cafe\u0301", "title") == "caf\u00e9"

    def test_none_is_empty(self):
        assert normalize_text(None, "title") == ""

    def test_rejects_non_text(self):
        with pytest.raises(ValueError):
            normalize_text(12, "title")

    def test_rejects_lone_surrogate(self):
        with pytest.raises(UnicodeError):
            normalize_text("bad \ud800 text", "body")


def test_normalize_tags_flattens_sequences():
    assert normalize_tags(["planning", " q1 ", ""]) == "planning q1"
    assert normalize_tags("a  b") == "a b"


def test_tokenize_text_is_lowercase_and_unique():
    assert tokenize_text("Meeting Notes", "notes about meeting") == ["meeting", "notes", "about"]


def test_format_timestamp_is_utc_and_fixed_width():
    """Timestamps compare correctly as text."""
    plus_two = timezone(timedelta(hours=2))
    assert format_timestamp(datetime(2026, 1, 1, 14, 0, tzinfo=plus_two)) == (
        "2026-01-01T12:00:00.000000+00:00"
    )


class TestNormalizeItem:
    """Tests for normalize_item."""

    def test_full_note(self, make_item, now):
        entry = normalize_item(
            make_item("n1", title="Meeting  Notes", body="Q1 planning", tags=["work"])
        )

        assert entry.item_id == "n1"
        assert entry.title == "Meeting Notes"
        assert entry.tags == "work"
        assert entry.tokens == "meeting notes q1 planning work"
        assert entry.updated_at == now

    def test_unregistered_fields_are_dropped(self, make_item):
        """Chat messages only index their body."""
        entry = normalize_item(make_item("c1", "chat", title="ignored", body="hello there"))

        assert entry.title == ""
        assert entry.body == "hello there"

    def test_timestamps_fall_back(self, make_item, now):
        """Missing created_at uses updated_at; missing both uses now."""
        later = now + timedelta(hours=1)
        entry = normalize_item(make_item("n1", created_at=None, updated_at=later))
        assert entry.created_at == later

        entry = normalize_item(make_item("n2", created_at=None, updated_at=None), now=now)
        assert entry.created_at == entry.updated_at == now

    def test_naive_timestamps_become_utc(self, make_item):
        entry = normalize_item(make_item("n1", created_at=datetime(2026, 1, 1)))
        assert entry.created_at.tzinfo == UTC

    @pytest.mark.parametrize(
        "fields",
        [
            {"visibility": "secret"},
            {"title": 42},
            {"body": "broken \udc00"},
            {"created_at": None, "updated_at": None},
        ],
    )
    def test_failures_raise_index_sync_failure(self, make_item, fields):
        with pytest.raises(IndexSyncFailure) as exc_info:
            normalize_item(make_item("n1", **fields))

        assert exc_info.value.item_id == "n1"
        assert exc_info.value.content_type == "notes"

    def test_unknown_content_type(self, make_item):
        with pytest.raises(IndexSyncFailure):
            normalize_item(make_item("x1", "emails", body="hello"))
