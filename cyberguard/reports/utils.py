import math
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from cyberguard.shared.errors import RateLimited, ValidationError
from cyberguard.shared.utils import is_valid_email, sanitize_input
from .models import ReportDraft

logger = logging.getLogger("reports.utils")

REQUIRED_FIELDS = ("reporter_name", "contact_info", "crime_type", "description", "latitude", "longitude")

# Limits apply to the sanitized (HTML-encoded) text, which is what gets stored
MAX_LENGTHS = {
    "reporter_name": 255,
    "contact_info": 255,
    "crime_type": 100,
    "description": 10000,
}

RATE_LIMIT_MAX_SUBMISSIONS = 10
RATE_LIMIT_WINDOW = timedelta(hours=1)

REPORT_NUMBER_PREFIX = "CG"

COUNT_RECENT_BY_IP_SQL = """
    SELECT COUNT(*) AS count
    FROM incident_reports
    WHERE ip_address = $1
    AND created_at >= $2
"""


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_coordinate(value, name: str, limit: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}: must be a number")
    if not math.isfinite(number) or number < -limit or number > limit:
        raise ValidationError("Invalid coordinates provided")
    return number


def classify_contact(contact: str) -> Tuple[Optional[str], Optional[str]]:
    """Return (email, phone); exactly one is set"""
    if is_valid_email(contact):
        return contact, None
    return None, contact


def validate_submission(data: dict) -> ReportDraft:
    """Check required fields in order, range-check coordinates, sanitize the free text"""
    if not data or not isinstance(data, dict):
        raise ValidationError("No data received")
    for field in REQUIRED_FIELDS:
        value = data.get(field)
        if _is_blank(value):
            raise ValidationError(f"Missing required field: {field}")
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise ValidationError(f"Invalid field: {field}")

    latitude = parse_coordinate(data["latitude"], "latitude", 90)
    longitude = parse_coordinate(data["longitude"], "longitude", 180)

    cleaned = {field: sanitize_input(data[field]) for field in MAX_LENGTHS}
    for field, limit in MAX_LENGTHS.items():
        if not cleaned[field]:
            raise ValidationError(f"Missing required field: {field}")
        if len(cleaned[field]) > limit:
            raise ValidationError(f"Field too long: {field} (max {limit} characters)")

    email, phone = classify_contact(cleaned["contact_info"])
    return ReportDraft(
        reporter_name=cleaned["reporter_name"],
        reporter_email=email,
        reporter_phone=phone,
        crime_type=cleaned["crime_type"],
        description=cleaned["description"],
        latitude=latitude,
        longitude=longitude,
    )


def month_bounds(moment: datetime) -> Tuple[datetime, datetime]:
    """[first instant of moment's month, first instant of the next month)"""
    start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def report_period(moment: datetime) -> str:
    return f"{moment.year:04d}{moment.month:02d}"


def format_report_number(moment: datetime, sequence: int) -> str:
    return f"{REPORT_NUMBER_PREFIX}-{report_period(moment)}-{sequence:04d}"


async def check_rate_limit(db, client_ip: str, now: Optional[datetime] = None) -> int:
    """Raise RateLimited when client_ip already reached the hourly cap; return the recent count otherwise"""
    if not client_ip or client_ip == "unknown":
        return 0
    now = now or datetime.now(timezone.utc)
    result = await db.fetch_one(COUNT_RECENT_BY_IP_SQL, (client_ip, now - RATE_LIMIT_WINDOW))
    count = result["count"] if result else 0
    logger.debug(f"Rate limit check for {client_ip}: {count} recent submissions")
    if count >= RATE_LIMIT_MAX_SUBMISSIONS:
        logger.warning(f"Rate limit reached for {client_ip} ({count} submissions in the last hour)")
        raise RateLimited(client_ip, count)
    return count
