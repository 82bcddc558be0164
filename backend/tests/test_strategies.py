"""Native and fallback strategy tests."""

import dataclasses
from datetime import timedelta

import pytest

from quarry.config import load_config
from quarry.index.normalize import normalize_item
from quarry.schemas import DateRangeOption, FilterOptions, SearchOptions
from quarry.search.planner import QueryPlanner
from quarry.search.strategies import FallbackStrategy, NativeStrategy, build_match_expression


@pytest.fixture
def search_config():
    return load_config(None).search


@pytest.fixture
def plan(search_config):
    planner = QueryPlanner(search_config)
    return lambda q, **options: planner.plan(q, SearchOptions(**options))


@pytest.fixture
def seeded_store(index_store, make_item, now):
    items = [
        make_item("n1", title="Meeting Notes", body="Q1 planning", workspace_id="ws1"),
        make_item("n2", title="Lunch", body="meeting about the meeting agenda", owner_id="bob"),
        make_item(
            "n3",
            title="Old meeting",
            body="archived",
            created_at=now - timedelta(days=60),
        ),
        make_item("n4", title="Unrelated", body="nothing to see"),
    ]
    for item in items:
        index_store.upsert(normalize_item(item))
    return index_store


@pytest.fixture(params=["native", "fallback"])
def strategy(request, seeded_store, search_config):
    if request.param == "native":
        if not seeded_store.with_fts:
            pytest.skip("SQLite built without FTS5")
        return NativeStrategy(seeded_store.db, search_config)
    return FallbackStrategy(seeded_store.db, search_config)


def _ids(result):
    return sorted(c.entry.item_id for c in result.candidates)


class TestStrategies:
    """Behavior shared by both strategies."""

    def test_matches_any_term(self, strategy, plan):
        result = strategy.execute(plan("meeting"), "notes")

        assert result.strategy == strategy.name
        assert result.failed is False
        assert _ids(result) == ["n1", "n2", "n3"]

    def test_signal_is_non_negative(self, strategy, plan):
        result = strategy.execute(plan("meeting agenda"), "notes")

        assert all(c.signal >= 0 for c in result.candidates)
        assert any(c.signal > 0 for c in result.candidates)

    def test_no_match(self, strategy, plan):
        assert strategy.execute(plan("xyz-nonexistent"), "notes").candidates == []

    def test_workspace_filter(self, strategy, plan):
        assert _ids(strategy.execute(plan("meeting", workspace_id="ws1"), "notes")) == ["n1"]

    def test_author_filter(self, strategy, plan):
        result = strategy.execute(plan("meeting", filters=FilterOptions(author="bob")), "notes")
        assert _ids(result) == ["n2"]

    def test_date_range_filter(self, strategy, plan, now):
        filters = FilterOptions(date_range=DateRangeOption(start=now - timedelta(days=7)))
        assert _ids(strategy.execute(plan("meeting", filters=filters), "notes")) == ["n1", "n2"]

    def test_highlights_mark_terms(self, strategy, plan):
        result = strategy.execute(plan("meeting"), "notes")
        by_id = {c.entry.item_id: c for c in result.candidates}

        assert "<mark>" in by_id["n1"].highlights["title"]
        assert "<mark>" in by_id["n2"].highlights["body"]
        assert "title" not in by_id["n2"].highlights

    def test_highlights_can_be_disabled(self, strategy, plan):
        result = strategy.execute(plan("meeting", include_highlights=False), "notes")
        assert all(c.highlights == {} for c in result.candidates)

    def test_per_type_cap(self, seeded_store, search_config, plan, make_item):
        """At most per_type_limit candidates come back."""
        for i in range(5):
            seeded_store.upsert(normalize_item(make_item(f"extra{i}", title="meeting")))
        config = dataclasses.replace(search_config, per_type_limit=3)

        result = FallbackStrategy(seeded_store.db, config).execute(plan("meeting"), "notes")

        assert len(result.candidates) == 3


class TestFallbackStrategy:
    """Fallback-only behavior."""

    def test_like_wildcards_are_literal(self, seeded_store, search_config, plan, make_item):
        """Underscore and percent in a query do not act as wildcards."""
        seeded_store.upsert(normalize_item(make_item("n5", title="file_name report")))
        seeded_store.upsert(normalize_item(make_item("n6", title="filexname memo")))
        strategy = FallbackStrategy(seeded_store.db, search_config)

        assert _ids(strategy.execute(plan("file_name"), "notes")) == ["n5"]

    def test_hits_count_fields(self, seeded_store, search_config, plan):
        """The raw signal counts matching (field, term) pairs."""
        result = FallbackStrategy(seeded_store.db, search_config).execute(
            plan("meeting planning"), "notes"
        )
        signals = {c.entry.item_id: c.signal for c in result.candidates}

        assert signals["n1"] == 2.0  # title: meeting, body: planning
        assert signals["n2"] == 1.0


def test_build_match_expression_quotes_terms():
    assert build_match_expression(("meeting", "q1-plan")) == '"meeting" OR "q1-plan"'
    assert build_match_expression(("--", "..")) == ""
