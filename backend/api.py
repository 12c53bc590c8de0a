"""
FastAPI backend for the Team Flow dashboards.

Serves the team and flow-health snapshots of an organization and the bulk
task reassignment mutation. Supports CORS for local development.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from team_flow.core.aggregator import Aggregator
from team_flow.core.reassignment import (
    ReassignmentSelection,
    is_valid_target,
    reassign_selected,
)
from team_flow.core.repository import ReassignResult, TaskRepository
from team_flow.core.settings import load_settings

logger = logging.getLogger(__name__)

settings = load_settings()

# Initialize FastAPI app
app = FastAPI(
    title="Team Flow API",
    description="Backend API for the team workload and flow-health dashboards",
    version="1.0.0",
)

# Configure CORS - allow all localhost origins in development
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"http://(localhost|127\.0\.0\.1):\d+",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_aggregator: Optional[Aggregator] = None

# Simple in-memory cache for snapshot dicts: key -> (snapshot, cached_at)
snapshot_cache: Dict[str, tuple[Dict[str, Any], datetime]] = {}
MAX_CACHE_ENTRIES = 100

Variant = Literal["team", "flow_health"]


class ReassignRequest(BaseModel):
    task_ids: List[str]
    new_assignee_id: str
    # When both are given the tasks must be open tasks of that member
    from_user_id: Optional[str] = None
    organization_id: Optional[str] = None


def get_aggregator() -> Aggregator:
    """
    Shared aggregator, created on first use.

    Without Supabase credentials the aggregator has no repository and every
    snapshot comes back empty.
    """
    global _aggregator
    if _aggregator is None:
        try:
            repository: Optional[TaskRepository] = TaskRepository.from_settings(settings)
        except ValueError as e:
            logger.warning(f"Task repository unavailable: {e}")
            repository = None
        _aggregator = Aggregator(settings=settings, repository=repository)
    return _aggregator


def _resolve_organization(
    aggregator: Aggregator, organization_id: Optional[str], user_id: Optional[str]
) -> Optional[str]:
    if organization_id:
        return organization_id
    return aggregator.resolve_organization_id(user_id)


def _cached_snapshot(
    aggregator: Aggregator,
    variant: Variant,
    organization_id: Optional[str],
    use_cache: bool,
) -> Dict[str, Any]:
    cache_key = f"{variant}_{organization_id or 'none'}"
    now = datetime.now(timezone.utc)

    if use_cache and cache_key in snapshot_cache:
        cached_snapshot, cache_time = snapshot_cache[cache_key]
        age = (now - cache_time).total_seconds()
        if age < aggregator.settings.cache_ttl_seconds:
            logger.info(f"Returning cached snapshot (age: {age:.1f}s): {cache_key}")
            return cached_snapshot

    logger.info(f"Creating new snapshot: {cache_key}")
    if variant == "team":
        snapshot_dict = aggregator.create_team_snapshot(organization_id, now).to_dict()
    else:
        snapshot_dict = aggregator.create_flow_health_snapshot(organization_id, now).to_dict()

    if snapshot_dict["load_error"]:
        logger.warning(f"Not caching failed snapshot {cache_key}: {snapshot_dict['load_error']}")
        return snapshot_dict

    snapshot_cache[cache_key] = (snapshot_dict, now)

    # Clean up old cache entries (simple cleanup)
    if len(snapshot_cache) > MAX_CACHE_ENTRIES:
        sorted_keys = sorted(snapshot_cache.keys(), key=lambda k: snapshot_cache[k][1])
        for key in sorted_keys[: len(sorted_keys) // 2]:
            del snapshot_cache[key]

    return snapshot_dict


def _selection_for(aggregator: Aggregator, request: ReassignRequest) -> ReassignmentSelection:
    """Selection over the source member's open tasks, narrowed to the request."""
    snapshot = aggregator.create_team_snapshot(request.organization_id)
    source = next(
        (w for w in snapshot.workload if w.user_id == request.from_user_id), None
    )
    if source is None:
        raise HTTPException(
            status_code=404, detail=f"Member {request.from_user_id} has no open tasks"
        )

    selection = ReassignmentSelection(source)
    requested = set(request.task_ids)
    unknown = requested - set(selection.selected_ids)
    if unknown:
        raise HTTPException(
            status_code=400,
            detail=f"Tasks not open for member {request.from_user_id}: {sorted(unknown)}",
        )
    for task_id in selection.selected_ids:
        if task_id not in requested:
            selection.toggle(task_id)
    return selection


@app.get("/")  # type: ignore[misc]
async def root() -> Dict[str, Any]:
    """
    Root endpoint with API information.

    Returns
    -------
    dict
        API information and status
    """
    return {
        "name": "Team Flow API",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "/api/analytics/team": "Team dashboard snapshot",
            "/api/analytics/flow-health": "Flow-health dashboard snapshot",
            "/api/tasks/reassign": "Bulk task reassignment (POST)",
            "/health": "Health check",
        },
    }


@app.get("/health")  # type: ignore[misc]
async def health() -> Dict[str, str]:
    return {"status": "healthy"}


@app.get("/api/analytics/team")  # type: ignore[misc]
async def get_team_snapshot(
    organization_id: Optional[str] = Query(None, description="Organization to analyze"),
    user_id: Optional[str] = Query(
        None, description="Member whose organization is analyzed when no organization_id"
    ),
    use_cache: bool = Query(True, description="Use cached snapshot if available"),
    aggregator: Aggregator = Depends(get_aggregator),
) -> Dict[str, Any]:
    """
    Get the team dashboard snapshot.

    Returns
    -------
    dict
        Stats, workload, weekly trend, resolution statistics, ranking,
        alerts and distributions. Empty when no organization resolves.
    """
    try:
        org_id = _resolve_organization(aggregator, organization_id, user_id)
        return _cached_snapshot(aggregator, "team", org_id, use_cache)
    except Exception as e:
        logger.error(f"Error creating team snapshot: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating snapshot: {str(e)}")


@app.get("/api/analytics/flow-health")  # type: ignore[misc]
async def get_flow_health_snapshot(
    organization_id: Optional[str] = Query(None, description="Organization to analyze"),
    user_id: Optional[str] = Query(
        None, description="Member whose organization is analyzed when no organization_id"
    ),
    use_cache: bool = Query(True, description="Use cached snapshot if available"),
    aggregator: Aggregator = Depends(get_aggregator),
) -> Dict[str, Any]:
    """
    Get the flow-health dashboard snapshot.

    Returns
    -------
    dict
        Stats, staleness-aware workload, weekly trend with net differences,
        bottlenecks, stagnation alerts, tag focus and flow-health score.
        Empty when no organization resolves.
    """
    try:
        org_id = _resolve_organization(aggregator, organization_id, user_id)
        return _cached_snapshot(aggregator, "flow_health", org_id, use_cache)
    except Exception as e:
        logger.error(f"Error creating flow-health snapshot: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating snapshot: {str(e)}")


@app.post("/api/tasks/reassign")  # type: ignore[misc]
async def reassign_tasks(
    request: ReassignRequest,
    aggregator: Aggregator = Depends(get_aggregator),
) -> Dict[str, Any]:
    """
    Move tasks to another member in one update.

    Cached snapshots are dropped after a successful reassignment so the
    next request sees the new workload.
    """
    if not request.task_ids:
        raise HTTPException(status_code=400, detail="task_ids must not be empty")
    if aggregator.repository is None:
        raise HTTPException(status_code=503, detail="Task repository is not configured")

    if request.from_user_id and request.organization_id:
        selection = _selection_for(aggregator, request)
        result = reassign_selected(selection, request.new_assignee_id, aggregator.repository)
    elif not is_valid_target(request.new_assignee_id):
        result = ReassignResult(success=False, count=0, message="Invalid target member")
    else:
        result = aggregator.repository.reassign_tasks(
            request.task_ids, request.new_assignee_id
        )

    if result.success:
        snapshot_cache.clear()

    return {"success": result.success, "count": result.count, "message": result.message}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    logger.info(f"Starting Team Flow API on http://0.0.0.0:{settings.port}")
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level="info")  # nosec B104
