import json
import logging
from typing import Optional

from .errors import DatabaseConnectionError, QueryError

logger = logging.getLogger("shared.activity")

INSERT_ACTIVITY_SQL = """
    INSERT INTO activity_log (user_id, action, details, ip_address, user_agent, created_at)
    VALUES ($1, $2, $3, $4, $5, NOW())
"""


async def log_activity(
    db,
    action: str,
    details=None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    user_id: Optional[int] = None,
) -> bool:
    """Record an audit row. Never raises: a failed audit must not fail the caller."""
    if isinstance(details, (dict, list)):
        details = json.dumps(details, default=str)
    try:
        await db.query(INSERT_ACTIVITY_SQL, (user_id, action, details, ip_address, user_agent))
        logger.debug(f"Activity '{action}' recorded")
        return True
    except (QueryError, DatabaseConnectionError) as e:
        logger.warning(f"Failed to log activity '{action}': {e}")
        return False
