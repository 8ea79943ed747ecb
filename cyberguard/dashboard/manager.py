import logging
from datetime import datetime
from typing import Any, Dict, List

from cyberguard.shared.errors import DatabaseConnectionError

logger = logging.getLogger("dashboard.manager")

DEFAULT_RECENT_LIMIT = 10
MAX_RECENT_LIMIT = 100
MAP_REPORT_LIMIT = 50

DASHBOARD_STATS_SQL = """
    SELECT
        COUNT(*) AS total_reports,
        COUNT(*) FILTER (WHERE status = 'pending') AS pending_reports,
        COUNT(*) FILTER (WHERE status = 'under_review') AS under_review,
        COUNT(*) FILTER (WHERE status = 'investigating') AS investigating,
        COUNT(*) FILTER (WHERE status = 'resolved') AS resolved_reports,
        COUNT(*) FILTER (WHERE status = 'closed') AS closed_reports,
        COALESCE(SUM(estimated_loss), 0) AS total_estimated_loss,
        COALESCE(AVG(estimated_loss), 0) AS avg_estimated_loss,
        AVG(FLOOR(EXTRACT(EPOCH FROM (resolution_date - created_at)) / 3600))
            FILTER (WHERE resolution_date IS NOT NULL) AS avg_resolution_time
    FROM incident_reports
    WHERE created_at >= NOW() - INTERVAL '30 days'
"""

RECENT_REPORTS_SQL = """
    SELECT
        ir.id,
        ir.report_number,
        ir.reporter_name,
        ir.reporter_email,
        cc.category_name,
        cc.category_icon,
        cc.category_color,
        ir.incident_description,
        ir.status,
        ir.priority,
        ir.estimated_loss,
        ir.currency,
        l.latitude,
        l.longitude,
        l.city,
        l.region,
        ir.created_at,
        ir.updated_at,
        u.full_name AS assigned_to_name
    FROM incident_reports ir
    JOIN crime_categories cc ON ir.crime_category_id = cc.id
    JOIN locations l ON ir.location_id = l.id
    LEFT JOIN users u ON ir.assigned_to = u.id
    ORDER BY ir.created_at DESC
    LIMIT $1
"""

MAP_REPORTS_SQL = """
    SELECT
        ir.id,
        ir.report_number,
        cc.category_name,
        cc.category_color,
        ir.priority,
        ir.status,
        l.latitude,
        l.longitude,
        l.city,
        l.region,
        ir.incident_description,
        ir.created_at
    FROM incident_reports ir
    JOIN crime_categories cc ON ir.crime_category_id = cc.id
    JOIN locations l ON ir.location_id = l.id
    WHERE ir.is_public = TRUE
    AND l.latitude IS NOT NULL
    AND l.longitude IS NOT NULL
    ORDER BY ir.created_at DESC
    LIMIT $1
"""

CRIME_TRENDS_SQL = """
    SELECT
        cc.category_name,
        cc.category_color,
        COUNT(*) AS count,
        to_char(date_trunc('month', ir.created_at), 'YYYY-MM') AS month
    FROM incident_reports ir
    JOIN crime_categories cc ON ir.crime_category_id = cc.id
    WHERE ir.created_at >= NOW() - INTERVAL '12 months'
    GROUP BY cc.category_name, cc.category_color, month
    ORDER BY month ASC, count DESC
"""

CRIME_DISTRIBUTION_SQL = """
    SELECT
        cc.category_name,
        cc.category_icon,
        cc.category_color,
        COUNT(*) AS count,
        ROUND(COUNT(*) * 100.0 / NULLIF((SELECT COUNT(*) FROM incident_reports), 0), 2) AS percentage
    FROM incident_reports ir
    JOIN crime_categories cc ON ir.crime_category_id = cc.id
    WHERE ir.created_at >= NOW() - INTERVAL '30 days'
    GROUP BY cc.id, cc.category_name, cc.category_icon, cc.category_color
    ORDER BY count DESC
"""

PENDING_COUNT_SQL = "SELECT COUNT(*) AS count FROM incident_reports WHERE status = 'pending'"

SYSTEM_STATS_TOP_N = 5

SYSTEM_REPORT_TOTALS_SQL = """
    SELECT
        COUNT(*) AS total_reports,
        COUNT(*) FILTER (WHERE status = 'pending') AS pending_reports,
        COUNT(*) FILTER (WHERE status = 'resolved') AS resolved_reports,
        COUNT(*) FILTER (WHERE created_at >= date_trunc('day', NOW())) AS today_reports,
        COUNT(*) FILTER (WHERE created_at >= NOW() - INTERVAL '7 days') AS week_reports
    FROM incident_reports
"""

TOP_CRIMES_SQL = """
    SELECT cc.category_name, COUNT(*) AS count
    FROM incident_reports ir
    JOIN crime_categories cc ON ir.crime_category_id = cc.id
    GROUP BY cc.category_name
    ORDER BY count DESC, cc.category_name
    LIMIT $1
"""

TOP_LOCATIONS_SQL = """
    SELECT l.city, l.region, COUNT(*) AS count
    FROM incident_reports ir
    JOIN locations l ON ir.location_id = l.id
    GROUP BY l.city, l.region
    ORDER BY count DESC, l.city, l.region
    LIMIT $1
"""


def _month_span(first: str, last: str) -> List[str]:
    """Every YYYY-MM from first to last inclusive"""
    year, month = (int(part) for part in first.split("-"))
    end = tuple(int(part) for part in last.split("-"))
    months = []
    while (year, month) <= end:
        months.append(f"{year:04d}-{month:02d}")
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return months


def month_label(month: str) -> str:
    return datetime.strptime(f"{month}-01", "%Y-%m-%d").strftime("%b %Y")


def shape_crime_trends(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Pivot (category, month, count) rows into chart series.

    Every category gets one value per month of the contiguous span covered by
    the data, with 0 where it had no reports that month.
    """
    if not rows:
        return {"months": [], "datasets": []}

    observed = sorted({row["month"] for row in rows})
    months = _month_span(observed[0], observed[-1])

    categories: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        category = categories.setdefault(row["category_name"], {
            "label": row["category_name"],
            "color": row["category_color"],
            "counts": {},
        })
        category["counts"][row["month"]] = category["counts"].get(row["month"], 0) + int(row["count"])

    datasets = [
        {
            "label": category["label"],
            "color": category["color"],
            "data": [category["counts"].get(month, 0) for month in months],
        }
        for category in categories.values()
    ]
    return {"months": [month_label(month) for month in months], "datasets": datasets}


class DashboardData:
    """Read-only aggregations behind the admin dashboard"""

    def __init__(self, db):
        self.db = db

    async def get_dashboard_stats(self) -> Dict[str, Any]:
        return await self.db.fetch_one(DASHBOARD_STATS_SQL)

    async def get_recent_reports(self, limit: int = DEFAULT_RECENT_LIMIT) -> List[Dict[str, Any]]:
        limit = max(1, min(int(limit), MAX_RECENT_LIMIT))
        return await self.db.fetch_all(RECENT_REPORTS_SQL, (limit,))

    async def get_map_reports(self) -> List[Dict[str, Any]]:
        return await self.db.fetch_all(MAP_REPORTS_SQL, (MAP_REPORT_LIMIT,))

    async def get_crime_trends(self) -> List[Dict[str, Any]]:
        return await self.db.fetch_all(CRIME_TRENDS_SQL)

    async def get_crime_distribution(self) -> List[Dict[str, Any]]:
        return await self.db.fetch_all(CRIME_DISTRIBUTION_SQL)

    async def get_pending_count(self) -> int:
        row = await self.db.fetch_one(PENDING_COUNT_SQL)
        return row["count"] if row else 0

    async def get_system_stats(self, top_n: int = SYSTEM_STATS_TOP_N) -> Dict[str, Any]:
        """All-time report totals plus the busiest crime categories and places"""
        return {
            "reports": await self.db.fetch_one(SYSTEM_REPORT_TOTALS_SQL),
            "top_crimes": await self.db.fetch_all(TOP_CRIMES_SQL, (top_n,)),
            "top_locations": await self.db.fetch_all(TOP_LOCATIONS_SQL, (top_n,)),
        }


async def check_database_health(db) -> Dict[str, Any]:
    """healthy / error (probe query failed) / critical (no connection at all)"""
    try:
        result = await db.test_connection()
    except DatabaseConnectionError as e:
        logger.error(f"Health check: cannot establish database connection: {e}")
        return {
            "status": "critical",
            "message": "Cannot establish database connection",
            "error": str(e),
        }

    if result["success"]:
        return {
            "status": "healthy",
            "message": "Database connection is working properly",
            "details": result,
        }
    logger.warning(f"Health check: probe query failed: {result['error']}")
    return {
        "status": "error",
        "message": "Database connection failed",
        "error": result["error"],
    }
