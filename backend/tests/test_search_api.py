"""Search API tests."""

from datetime import UTC, datetime

import pytest
from httpx import ASGITransport, AsyncClient

from quarry.api.deps import (
    _reset_search_service,
    get_authorizer,
    get_content_store,
    get_search_service,
    get_settings,
    shutdown_search_service,
)
from quarry.config import load_settings
from quarry.main import app
from quarry.models import SourceItem

NOW = datetime.now(UTC)


def item(item_id, content_type="notes", **fields):
    fields.setdefault("owner_id", "alice")
    fields.setdefault("visibility", "public")
    return SourceItem(id=item_id, content_type=content_type, created_at=NOW, updated_at=NOW, **fields)


@pytest.fixture
async def search_service(tmp_path, monkeypatch):
    """Search service backed by a temporary data directory, with seeded content."""
    monkeypatch.setenv("QUARRY_DATA_DIR", str(tmp_path / "data"))
    load_settings.cache_clear()
    get_settings.cache_clear()
    _reset_search_service()

    authorizer = get_authorizer()
    authorizer.set_owner("ws1", "alice")
    authorizer.add_member("ws1", "bob")
    authorizer.set_owner("ws2", "carol")

    service = await get_search_service()
    for source in (
        item("n1", title="Meeting Notes", body="Q1 planning"),
        item("n2", title="Architecture", body="The system uses FastAPI"),
        item("w1", title="Roadmap", workspace_id="ws2", owner_id="carol", visibility="workspace"),
        item("f1", "files", title="meeting-agenda.pdf"),
    ):
        await service.feed.created(source)
    await service.synchronizer.flush(timeout=5)

    yield service

    await shutdown_search_service()
    _reset_search_service()
    load_settings.cache_clear()
    get_settings.cache_clear()


@pytest.fixture
async def client():
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


class TestSearchEndpoint:
    """Tests for GET /api/search."""

    async def test_search_returns_results(self, client, search_service):
        response = await client.get("/api/search", params={"q": "meeting"})

        assert response.status_code == 200
        data = response.json()
        assert {r["id"] for r in data["results"]} == {"n1", "f1"}
        assert data["totalResults"] == 2
        assert data["searchId"].startswith("search_")

    async def test_response_uses_camel_case(self, client, search_service):
        response = await client.get("/api/search", params={"q": "fastapi"})

        data = response.json()
        result = data["results"][0]
        assert {"contentType", "relevanceScore", "createdAt", "snippet", "title"} <= set(result)
        assert {"hasMore", "responseTimeMs", "facets", "suggestions"} <= set(data)
        assert set(data["facets"]) == {"contentTypes", "authors", "workspaces", "dateRanges"}

    async def test_search_returns_empty_for_no_match(self, client, search_service):
        response = await client.get("/api/search", params={"q": "nonexistent_term_xyz"})

        assert response.status_code == 200
        assert response.json()["results"] == []

    @pytest.mark.parametrize("params", [{"q": ""}, {}])
    async def test_empty_query_returns_error_body(self, client, search_service, params):
        response = await client.get("/api/search", params=params)

        assert response.status_code == 200
        data = response.json()
        assert data["error"] == "Query too short or empty"
        assert data["results"] == []
        assert data["totalResults"] == 0

    async def test_short_query_returns_error_body(self, client, search_service):
        response = await client.get("/api/search", params={"q": "?"})

        assert response.status_code == 200
        data = response.json()
        assert data["error"] == "Query too short or empty"
        assert data["results"] == []

    async def test_content_type_filter(self, client, search_service):
        response = await client.get(
            "/api/search", params={"q": "meeting", "content_types": "files"}
        )

        assert [r["id"] for r in response.json()["results"]] == ["f1"]

    async def test_unknown_content_type_is_bad_request(self, client, search_service):
        response = await client.get(
            "/api/search", params={"q": "meeting", "content_types": "emails"}
        )

        assert response.status_code == 400

    async def test_inverted_date_range_is_bad_request(self, client, search_service):
        response = await client.get(
            "/api/search",
            params={
                "q": "meeting",
                "date_start": "2026-02-01T00:00:00Z",
                "date_end": "2026-01-01T00:00:00Z",
            },
        )

        assert response.status_code == 400

    async def test_foreign_workspace_is_forbidden(self, client, search_service):
        response = await client.get(
            "/api/search", params={"q": "roadmap", "user_id": "bob", "workspace_id": "ws2"}
        )

        assert response.status_code == 403

    async def test_results_are_permission_filtered(self, client, search_service):
        as_bob = await client.get("/api/search", params={"q": "roadmap", "user_id": "bob"})
        as_carol = await client.get("/api/search", params={"q": "roadmap", "user_id": "carol"})

        assert as_bob.json()["results"] == []
        assert [r["id"] for r in as_carol.json()["results"]] == ["w1"]


class TestSuggestionsAndClicks:
    """Tests for suggestions and click logging."""

    async def test_suggestions_from_previous_searches(self, client, search_service):
        await client.get("/api/search", params={"q": "meeting notes"})

        response = await client.get("/api/search/suggestions", params={"q": "meet"})

        assert response.status_code == 200
        assert response.json() == {"query": "meet", "suggestions": ["meeting notes"]}

    async def test_suggestions_limit_is_validated(self, client, search_service):
        response = await client.get("/api/search/suggestions", params={"q": "meet", "limit": 0})

        assert response.status_code == 422

    async def test_click_is_accepted_and_recorded(self, client, search_service):
        search = (await client.get("/api/search", params={"q": "meeting"})).json()

        response = await client.post(
            "/api/search/click",
            json={"searchId": search["searchId"], "resultId": "n1", "resultType": "notes"},
        )

        assert response.status_code == 202
        assert response.json() == {"status": "accepted"}
        await search_service.analytics_logger.flush(timeout=5)
        assert search_service.analytics_store.get(search["searchId"]).clicked_result_id == "n1"

    async def test_click_requires_fields(self, client, search_service):
        response = await client.post("/api/search/click", json={"searchId": "search_1"})

        assert response.status_code == 422


class TestFacetsEndpoint:
    """Tests for GET /api/search/facets."""

    async def test_facets(self, client, search_service):
        response = await client.get("/api/search/facets", params={"user_id": "bob"})

        assert response.status_code == 200
        data = response.json()
        assert data["facets"]["contentTypes"] == {"notes": 2, "files": 1}
        assert "chat" in data["contentTypes"]

    async def test_foreign_workspace_is_forbidden(self, client, search_service):
        response = await client.get(
            "/api/search/facets", params={"user_id": "bob", "workspace_id": "ws2"}
        )

        assert response.status_code == 403


class TestAnalyticsEndpoints:
    """Tests for the analytics summary and export."""

    async def test_summary(self, client, search_service):
        await client.get("/api/search", params={"q": "meeting"})
        await client.get("/api/search", params={"q": "nothing-matches-this"})

        data = (await client.get("/api/search/analytics")).json()

        assert data["totalSearches"] == 2
        assert {q["query"] for q in data["popularQueries"]} == {"meeting", "nothing-matches-this"}
        assert [z["query"] for z in data["zeroResultQueries"]] == ["nothing-matches-this"]

    async def test_export_json(self, client, search_service):
        await client.get("/api/search", params={"q": "meeting"})

        response = await client.get("/api/search/analytics/export", params={"format": "json"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/json")
        data = response.json()
        assert data["timeRange"] == "30d"
        assert data["totalSearches"] == 1
        assert data["popularQueries"][0]["query"] == "meeting"

    async def test_export_csv(self, client, search_service):
        await client.get("/api/search", params={"q": "meeting"})

        response = await client.get(
            "/api/search/analytics/export", params={"format": "csv", "time_range": "7d"}
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "search-analytics-7d.csv" in response.headers["content-disposition"]
        lines = response.text.splitlines()
        assert lines[0] == "Query,Count,Last Searched"
        assert lines[1].startswith("meeting,1,")

    @pytest.mark.parametrize("params", [{"format": "xml"}, {"time_range": "1y"}])
    async def test_export_rejects_unknown_options(self, client, search_service, params):
        response = await client.get("/api/search/analytics/export", params=params)

        assert response.status_code == 422


class TestIndexEndpoints:
    """Tests for index status and rebuild."""

    async def test_status(self, client, search_service):
        response = await client.get("/api/search/index/status")

        assert response.status_code == 200
        data = response.json()
        assert data["withinBound"] is True
        notes = next(p for p in data["partitions"] if p["contentType"] == "notes")
        assert notes["indexed"] == 3

    async def test_rebuild(self, client, search_service):
        get_content_store().put(item("n9", title="Rebuilt note"))

        response = await client.post("/api/search/index/notes/rebuild")

        assert response.status_code == 200
        assert response.json()["indexed"] == 1
        search = (await client.get("/api/search", params={"q": "rebuilt"})).json()
        assert [r["id"] for r in search["results"]] == ["n9"]
        assert (await client.get("/api/search", params={"q": "architecture"})).json()[
            "results"
        ] == []

    async def test_rebuild_unknown_type(self, client, search_service):
        response = await client.post("/api/search/index/emails/rebuild")

        assert response.status_code == 404


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
