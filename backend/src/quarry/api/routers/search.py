"""Search endpoints."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from quarry.api.deps import get_search_service
from quarry.errors import AccessDenied, InvalidFilters
from quarry.schemas import (
    AnalyticsSummary,
    ClickRequest,
    DateRangeOption,
    FacetsResponse,
    FilterOptions,
    IndexStatusResponse,
    RebuildResponse,
    SearchOptions,
    SearchResponse,
    SuggestionsResponse,
)
from quarry.search.service import SearchService

router = APIRouter(prefix="/api/search", tags=["search"])


@router.get("", response_model=SearchResponse)
async def search(
    q: str = Query("", description="Search query"),
    user_id: Optional[str] = Query(None, description="Requesting user"),
    content_types: Optional[str] = Query(
        None, description="Comma-separated content types: notes, workspaces, files, users, chat"
    ),
    workspace_id: Optional[str] = Query(None, description="Restrict to one workspace"),
    limit: Optional[int] = Query(None, description="Page size"),
    offset: int = Query(0, description="Results to skip"),
    sort_by: str = Query("relevance", description="relevance or date"),
    include_highlights: bool = Query(True),
    date_start: Optional[datetime] = Query(None, description="Earliest creation time"),
    date_end: Optional[datetime] = Query(None, description="Latest creation time"),
    author: Optional[str] = Query(None, description="Owner/author id"),
    session_id: Optional[str] = Query(None),
    service: SearchService = Depends(get_search_service),
) -> SearchResponse:
    """Search every content type the requester can see.

    A query that is too short after sanitization returns an empty result set
    with an error message rather than failing the request.
    """
    date_range = None
    if date_start is not None or date_end is not None:
        date_range = DateRangeOption(start=date_start, end=date_end)
    options = SearchOptions(
        user_id=user_id,
        content_types=content_types.split(",") if content_types else None,
        filters=FilterOptions(date_range=date_range, author=author),
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        workspace_id=workspace_id,
        include_highlights=include_highlights,
        session_id=session_id,
    )
    try:
        return await service.search(q, options)
    except InvalidFilters as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except AccessDenied as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.get("/suggestions", response_model=SuggestionsResponse)
async def suggestions(
    q: str = Query(..., min_length=1, description="Partial query"),
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: SearchService = Depends(get_search_service),
) -> SuggestionsResponse:
    """Autocomplete from previously searched queries."""
    return SuggestionsResponse(query=q, suggestions=service.suggest(q, limit))


@router.post("/click", status_code=status.HTTP_202_ACCEPTED)
async def log_click(
    request: ClickRequest,
    service: SearchService = Depends(get_search_service),
) -> dict[str, str]:
    """Record a click on a result of an earlier search."""
    service.log_click(request.search_id, request.result_id, request.result_type)
    return {"status": "accepted"}


@router.get("/facets", response_model=FacetsResponse)
async def facets(
    user_id: Optional[str] = Query(None, description="Requesting user"),
    workspace_id: Optional[str] = Query(None, description="Restrict to one workspace"),
    service: SearchService = Depends(get_search_service),
) -> FacetsResponse:
    """Facet counts over everything the requester can see."""
    try:
        result = await service.facets(user_id, workspace_id)
    except AccessDenied as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return FacetsResponse(facets=result, content_types=list(service.content_types))


@router.get("/analytics", response_model=AnalyticsSummary)
async def analytics(
    service: SearchService = Depends(get_search_service),
) -> AnalyticsSummary:
    """In-memory search aggregates since the service started."""
    return service.analytics()


@router.get("/analytics/export")
async def export_analytics(
    format: str = Query("json", pattern="^(json|csv)$"),
    time_range: str = Query("30d", pattern="^(7d|30d|90d|all)$"),
    service: SearchService = Depends(get_search_service),
) -> Response:
    """Export persisted search analytics as JSON or CSV."""
    body = await service.export_analytics(format, time_range)
    if format == "csv":
        return Response(
            content=body,
            media_type="text/csv",
            headers={
                "Content-Disposition": f'attachment; filename="search-analytics-{time_range}.csv"'
            },
        )
    return Response(content=body, media_type="application/json")


@router.post("/index/{content_type}/rebuild", response_model=RebuildResponse)
async def rebuild_index(
    content_type: str,
    service: SearchService = Depends(get_search_service),
) -> RebuildResponse:
    """Rebuild one content type's index from the content store."""
    if content_type not in service.content_types:
        raise HTTPException(status_code=404, detail=f"Unknown content type: {content_type}")
    try:
        report = await service.rebuild(content_type)
    except RuntimeError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return RebuildResponse(
        content_type=report.content_type,
        indexed=report.indexed,
        skipped=report.skipped,
        duration_ms=report.duration_ms,
    )


@router.get("/index/status", response_model=IndexStatusResponse)
async def index_status(
    service: SearchService = Depends(get_search_service),
) -> IndexStatusResponse:
    """Pending change events and staleness per content type."""
    return await service.index_status()
