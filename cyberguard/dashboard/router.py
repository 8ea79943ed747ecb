import logging

from fastapi import APIRouter, Depends, Query

from cyberguard.shared.db import ConnectionManager, get_db
from cyberguard.shared.errors import CyberGuardError
from cyberguard.shared.response import json_response
from .manager import DEFAULT_RECENT_LIMIT, DashboardData, check_database_health, shape_crime_trends

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/dashboard")
async def dashboard_api(
    api: str = Query(None),
    limit: int = Query(DEFAULT_RECENT_LIMIT, ge=1, le=100),
    db: ConnectionManager = Depends(get_db),
):
    """JSON resources for the dashboard charts and map, selected by ?api=<name>"""
    dashboard = DashboardData(db)
    resources = {
        "stats": dashboard.get_dashboard_stats,
        "recent_reports": lambda: dashboard.get_recent_reports(limit),
        "map_data": dashboard.get_map_reports,
        "crime_trends": lambda: _crime_trends(dashboard),
        "crime_distribution": dashboard.get_crime_distribution,
        "pending_count": lambda: _pending_count(dashboard),
        "system_stats": dashboard.get_system_stats,
        "health_check": lambda: check_database_health(db),
    }
    handler = resources.get(api)
    if handler is None:
        logger.warning(f"Unknown dashboard resource requested: {api}")
        return json_response({"error": "API endpoint not found"}, 404)

    try:
        return json_response(await handler())
    except CyberGuardError as e:
        logger.exception(f"Dashboard API '{api}' failed")
        return json_response({"error": f"API error: {e}"}, 500)


async def _crime_trends(dashboard: DashboardData):
    return shape_crime_trends(await dashboard.get_crime_trends())


async def _pending_count(dashboard: DashboardData):
    return {"count": await dashboard.get_pending_count()}
