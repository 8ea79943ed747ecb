import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional, Sequence

from fastapi.responses import JSONResponse

from cyberguard.shared.activity import log_activity
from cyberguard.shared.errors import (
    CyberGuardError,
    PersistenceError,
    RateLimited,
    SubmissionError,
    ValidationError,
)
from cyberguard.shared.response import TIMESTAMP_FORMAT, error_response, serialize_data, success_response, timestamp_now
from cyberguard.shared.schema import check_tables
from .models import ClientInfo, ReportDraft, SubmissionResult, SubmissionStats
from .places import TANZANIA_PLACES, ReferencePlace, nearest_place
from .utils import check_rate_limit, format_report_number, month_bounds, report_period, validate_submission

logger = logging.getLogger("reports.manager")

DEFAULT_CATEGORY_ICON = "🔍"
DEFAULT_CATEGORY_COLOR = "#718096"
SUBMISSION_SOURCE = "web_form"

FIND_ACTIVE_CATEGORY_SQL = """
    SELECT id FROM crime_categories
    WHERE category_name = $1 AND is_active = TRUE
"""

FIND_CATEGORY_BY_NAME_SQL = """
    SELECT id, is_active FROM crime_categories
    WHERE category_name = $1
"""

INSERT_CATEGORY_SQL = """
    INSERT INTO crime_categories (category_name, category_icon, category_color, description, is_active)
    VALUES ($1, $2, $3, $4, TRUE)
    ON CONFLICT (category_name) DO NOTHING
    RETURNING id
"""

INSERT_LOCATION_SQL = """
    INSERT INTO locations (latitude, longitude, city, region, country, location_type)
    VALUES ($1, $2, $3, $4, $5, 'exact')
    RETURNING id
"""

# Seeds a new month from the reports already in it, then increments under the row lock
NEXT_REPORT_SEQUENCE_SQL = """
    INSERT INTO report_sequences (period, last_value, updated_at)
    VALUES (
        $1,
        (SELECT COUNT(*) FROM incident_reports WHERE created_at >= $2 AND created_at < $3) + 1,
        NOW()
    )
    ON CONFLICT (period) DO UPDATE
    SET last_value = report_sequences.last_value + 1, updated_at = NOW()
    RETURNING last_value
"""

INSERT_REPORT_SQL = """
    INSERT INTO incident_reports (
        report_number, reporter_name, reporter_email, reporter_phone,
        crime_category_id, incident_description, location_id,
        status, priority, ip_address, user_agent, submission_source,
        is_public, created_at
    ) VALUES ($1, $2, $3, $4, $5, $6, $7, 'pending', 'medium', $8, $9, $10, TRUE, $11)
    RETURNING id
"""

SUBMISSION_STATS_SQL = """
    SELECT
        COUNT(*) AS total_submissions,
        COUNT(*) FILTER (WHERE created_at >= $1) AS today_submissions,
        COUNT(*) FILTER (WHERE created_at >= $2) AS week_submissions
    FROM incident_reports
"""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReportSubmission:
    """
    Persists one incident report atomically:
    validate -> category -> location -> report number -> report row -> commit.
    Anything failing after BEGIN rolls the whole transaction back.
    """

    def __init__(
        self,
        db,
        places: Sequence[ReferencePlace] = TANZANIA_PLACES,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.places = places
        self.clock = clock

    async def find_active_category(self, session, name: str) -> Optional[int]:
        row = await session.fetch_one(FIND_ACTIVE_CATEGORY_SQL, (name,))
        return row["id"] if row else None

    async def resolve_category(self, session, name: str) -> int:
        """Get-or-create the category named `name` and return its id"""
        category_id = await self.find_active_category(session, name)
        if category_id is not None:
            logger.debug(f"Found existing category ID: {category_id}")
            return category_id

        logger.info(f"Creating new category: {name}")
        row = await session.fetch_one(
            INSERT_CATEGORY_SQL,
            (name, DEFAULT_CATEGORY_ICON, DEFAULT_CATEGORY_COLOR, f"Auto-created category for: {name}")
        )
        if row is not None:
            logger.info(f"Created new category with ID: {row['id']}")
            return row["id"]

        # Lost an insert race, or the name belongs to a deactivated category
        existing = await session.fetch_one(FIND_CATEGORY_BY_NAME_SQL, (name,))
        if existing is None:
            raise PersistenceError("Failed to create crime category")
        if not existing["is_active"]:
            logger.warning(f"Reusing inactive category '{name}' (ID {existing['id']})")
        return existing["id"]

    async def resolve_location(self, session, latitude: float, longitude: float) -> int:
        place = nearest_place(latitude, longitude, self.places)
        row = await session.fetch_one(
            INSERT_LOCATION_SQL,
            (Decimal(str(latitude)), Decimal(str(longitude)), place.city, place.region, place.country)
        )
        if row is None:
            raise PersistenceError("Failed to save location")
        logger.info(f"Created location with ID: {row['id']} in {place.city}, {place.region}")
        return row["id"]

    async def generate_report_number(self, session, moment: datetime) -> str:
        month_start, next_month = month_bounds(moment)
        sequence = await session.fetch_value(
            NEXT_REPORT_SEQUENCE_SQL, (report_period(moment), month_start, next_month)
        )
        if sequence is None:
            raise PersistenceError("Failed to generate report number")
        report_number = format_report_number(moment, sequence)
        logger.info(f"Generated report number: {report_number}")
        return report_number

    async def insert_report(
        self,
        session,
        draft: ReportDraft,
        report_number: str,
        category_id: int,
        location_id: int,
        client: ClientInfo,
        created_at: datetime,
    ) -> int:
        row = await session.fetch_one(INSERT_REPORT_SQL, (
            report_number,
            draft.reporter_name,
            draft.reporter_email,
            draft.reporter_phone,
            category_id,
            draft.description,
            location_id,
            client.ip_address,
            client.user_agent,
            SUBMISSION_SOURCE,
            created_at,
        ))
        if row is None:
            raise PersistenceError("Failed to save incident report")
        return row["id"]

    async def submit(self, data: dict, client: Optional[ClientInfo] = None) -> SubmissionResult:
        client = client or ClientInfo()
        draft = validate_submission(data)
        created_at = self.clock()

        async with self.db.session() as session:
            try:
                await session.begin_transaction()
                logger.debug("Started database transaction")
                category_id = await self.resolve_category(session, draft.crime_type)
                location_id = await self.resolve_location(session, draft.latitude, draft.longitude)
                report_number = await self.generate_report_number(session, created_at)
                report_id = await self.insert_report(
                    session, draft, report_number, category_id, location_id, client, created_at
                )
                await session.commit()
                logger.info(f"Report {report_number} (ID {report_id}) committed")
            except Exception as e:
                if session.in_transaction():
                    try:
                        await session.rollback()
                        logger.warning("Transaction rolled back due to error")
                    except CyberGuardError as rollback_error:
                        logger.error(f"Rollback failed: {rollback_error}")
                raise SubmissionError(str(e), cause=e) from e

        await log_activity(
            self.db,
            "incident_report_submitted",
            {"report_id": report_id, "report_number": report_number, "crime_type": draft.crime_type},
            ip_address=client.ip_address,
            user_agent=client.user_agent,
        )
        return SubmissionResult(
            report_number=report_number,
            report_id=report_id,
            timestamp=created_at.strftime(TIMESTAMP_FORMAT),
        )


async def get_submission_stats(db, now: Optional[datetime] = None) -> SubmissionStats:
    """Total, today's and trailing-week submission counts"""
    now = now or utc_now()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    row = await db.fetch_one(SUBMISSION_STATS_SQL, (today, now - timedelta(days=7)))
    return SubmissionStats(**row)


async def submit_report(db, data: dict, client: ClientInfo, places: Sequence[ReferencePlace] = TANZANIA_PLACES):
    """Rate-limit, run the submission workflow and shape the HTTP response"""
    logger.info(f"Processing submission from {client.ip_address}")
    try:
        await check_rate_limit(db, client.ip_address)
        result = await ReportSubmission(db, places=places).submit(data, client)
        logger.info(f"Report {result.report_number} submitted successfully")
        return success_response(result.model_dump(), "Report submitted successfully")
    except RateLimited as e:
        return error_response(str(e), 429, e.error_code, timestamp=False)
    except (ValidationError, SubmissionError) as e:
        logger.warning(f"Report submission rejected: {e}")
        return error_response(str(e), 400, e.error_code)
    except Exception as e:
        logger.exception("Error submitting report")
        return error_response(f"Server error: {e}", 500, "SERVER_ERROR")


async def submission_stats(db):
    try:
        stats = await get_submission_stats(db)
        return JSONResponse(content={"success": True, "stats": stats.model_dump()})
    except CyberGuardError:
        logger.exception("Error retrieving submission statistics")
        return JSONResponse(content={"success": False, "message": "Error retrieving statistics"})


async def submission_self_test(db):
    """Connectivity self-test for the submission endpoint"""
    try:
        probe = await db.test_connection()
        tables = await check_tables(db)
    except CyberGuardError as e:
        logger.exception("Submission self-test failed")
        return JSONResponse(content={"success": False, "message": f"Database connection failed: {e}"})
    return JSONResponse(content=serialize_data({
        "success": probe["success"],
        "message": "submit_incident is working" if probe["success"] else "Database probe failed",
        "database_test": probe,
        "tables": tables,
        "timestamp": timestamp_now(),
    }))
