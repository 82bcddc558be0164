"""Normalization of source items into index entries."""

import re
import unicodedata
from datetime import UTC, datetime
from typing import Optional, Sequence

from quarry.constants import CONTENT_TYPE_FIELDS, VISIBILITY_OPTIONS
from quarry.errors import IndexSyncFailure
from quarry.models import IndexEntry, SourceItem

_WHITESPACE = re.compile(r"\s+")
_WORD = re.compile(r"\w+")
# C0/C1 control characters other than whitespace
_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Fixed-width ISO form so stored timestamps compare correctly as text."""
    return as_utc(value).isoformat(timespec="microseconds")


def normalize_text(value: object, field_name: str) -> str:
    """Normalize one searchable field.

    Raises:
        ValueError: If the value is not text or cannot be encoded as UTF-8.
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be text, got {type(value).__name__}")
    # Lone surrogates and similar malformed input fail here
    value.encode("utf-8")
    value = unicodedata.normalize("NFC", value)
    value = _CONTROL.sub(" ", value)
    return _WHITESPACE.sub(" ", value).strip()


def normalize_tags(tags: object) -> str:
    """Flatten tags into a single space-separated field."""
    if tags is None:
        return ""
    if isinstance(tags, str):
        return normalize_text(tags, "tags")
    if not isinstance(tags, Sequence):
        raise ValueError(f"tags must be text or a sequence, got {type(tags).__name__}")
    return " ".join(t for t in (normalize_text(tag, "tags") for tag in tags) if t)


def tokenize_text(*fields: str) -> list[str]:
    """Lowercased word tokens across fields, first occurrence order, no repeats."""
    seen: dict[str, None] = {}
    for text in fields:
        for token in _WORD.findall(text.lower()):
            seen.setdefault(token, None)
    return list(seen)


def normalize_item(item: SourceItem, now: Optional[datetime] = None) -> IndexEntry:
    """Derive the full index entry for a source item.

    All searchable derivatives are produced together so an entry is always
    replaced as a whole.

    Args:
        item: Source item from the change feed or content store.
        now: Fallback for a missing updated_at when created_at is also missing.

    Returns:
        The normalized entry.

    Raises:
        IndexSyncFailure: If the item cannot be normalized.
    """
    try:
        if not isinstance(item.id, str) or not item.id:
            raise ValueError("item id must be a non-empty string")
        fields = CONTENT_TYPE_FIELDS.get(item.content_type)
        if fields is None:
            raise ValueError(f"unknown content type {item.content_type!r}")
        if item.visibility not in VISIBILITY_OPTIONS:
            raise ValueError(f"unknown visibility {item.visibility!r}")

        title = normalize_text(item.title, "title") if "title" in fields else ""
        body = normalize_text(item.body, "body") if "body" in fields else ""
        tags = normalize_tags(item.tags) if "tags" in fields else ""

        created_at = item.created_at or item.updated_at or now
        if created_at is None:
            raise ValueError("item has no timestamps")
        updated_at = item.updated_at or created_at

        return IndexEntry(
            item_id=item.id,
            content_type=item.content_type,
            owner_id=item.owner_id,
            workspace_id=item.workspace_id,
            title=title,
            body=body,
            tags=tags,
            tokens=" ".join(tokenize_text(title, body, tags)),
            visibility=item.visibility,
            created_at=as_utc(created_at),
            updated_at=as_utc(updated_at),
        )
    except (ValueError, TypeError, UnicodeError) as e:
        raise IndexSyncFailure(str(item.content_type), str(item.id), str(e)) from e
