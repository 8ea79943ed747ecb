"""
CyberGuard — Test Infrastructure (conftest.py)
===============================================
Provides:
  - FakeDatabase: in-memory stand-in for ConnectionManager, answering the
    statements the portal issues (keyed by the module SQL constants)
  - FastAPI TestClient with the database dependency overridden
  - Helpers for driving coroutines and building submissions
"""

import os
import sys
import copy
import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT_DIR)

from cyberguard.shared.activity import INSERT_ACTIVITY_SQL
from cyberguard.shared.db import get_db
from cyberguard.shared.errors import QueryError
from cyberguard.shared.schema import EXISTING_TABLES_SQL, REQUIRED_TABLES, SCHEMA_SQL
from cyberguard.shared.seed import INSERT_ADMIN_SQL, INSERT_CATEGORY_SEED_SQL
from cyberguard.reports.manager import (
    FIND_ACTIVE_CATEGORY_SQL,
    FIND_CATEGORY_BY_NAME_SQL,
    INSERT_CATEGORY_SQL,
    INSERT_LOCATION_SQL,
    INSERT_REPORT_SQL,
    NEXT_REPORT_SEQUENCE_SQL,
    SUBMISSION_STATS_SQL,
)
from cyberguard.reports.utils import COUNT_RECENT_BY_IP_SQL


def run(coro):
    return asyncio.run(coro)


# ============================================================================
# Fake database
# ============================================================================

class FakeSession:
    """Mirrors DatabaseSession; a transaction is a snapshot of the tables."""

    def __init__(self, db):
        self.db = db
        self._snapshot = None

    async def begin_transaction(self):
        self._snapshot = copy.deepcopy(self.db.tables)

    async def commit(self):
        self._snapshot = None
        self.db.commits += 1

    async def rollback(self):
        self.db.tables = self._snapshot
        self._snapshot = None
        self.db.rollbacks += 1

    def in_transaction(self):
        return self._snapshot is not None

    async def query(self, sql, params=None):
        self.db.execute(sql, params)
        return "OK"

    async def fetch_one(self, sql, params=None):
        rows = self.db.execute(sql, params)
        return dict(rows[0]) if rows else None

    async def fetch_all(self, sql, params=None):
        return [dict(row) for row in self.db.execute(sql, params)]

    async def fetch_value(self, sql, params=None):
        row = await self.fetch_one(sql, params)
        return next(iter(row.values())) if row else None


class FakeDatabase:
    def __init__(self):
        self.tables = {
            "crime_categories": [
                {"id": 1, "category_name": "Phishing", "is_active": True},
                {"id": 2, "category_name": "Legacy Scam", "is_active": False},
            ],
            "locations": [],
            "incident_reports": [],
            "report_sequences": {},
            "activity_log": [],
            "users": [],
        }
        self.fail_on = set()
        self.canned = {}
        self.calls = []
        self.connection_error = None
        self.probe_error = None
        self.commits = 0
        self.rollbacks = 0
        self.schema_created = False
        self._handlers = {
            FIND_ACTIVE_CATEGORY_SQL: self._find_active_category,
            FIND_CATEGORY_BY_NAME_SQL: self._find_category_by_name,
            INSERT_CATEGORY_SQL: self._insert_category,
            INSERT_CATEGORY_SEED_SQL: self._seed_category,
            INSERT_LOCATION_SQL: self._insert_location,
            NEXT_REPORT_SEQUENCE_SQL: self._next_sequence,
            INSERT_REPORT_SQL: self._insert_report,
            COUNT_RECENT_BY_IP_SQL: self._count_recent_by_ip,
            INSERT_ACTIVITY_SQL: self._insert_activity,
            INSERT_ADMIN_SQL: self._insert_admin,
            SUBMISSION_STATS_SQL: self._submission_stats,
            SCHEMA_SQL: self._create_schema,
            EXISTING_TABLES_SQL: self._existing_tables,
        }

    def count(self, table):
        return len(self.tables[table])

    # -- ConnectionManager surface -------------------------------------------

    @asynccontextmanager
    async def session(self):
        if self.connection_error is not None:
            raise self.connection_error
        session = FakeSession(self)
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()

    async def query(self, sql, params=None):
        async with self.session() as session:
            return await session.query(sql, params)

    async def fetch_one(self, sql, params=None):
        async with self.session() as session:
            return await session.fetch_one(sql, params)

    async def fetch_all(self, sql, params=None):
        async with self.session() as session:
            return await session.fetch_all(sql, params)

    async def test_connection(self):
        if self.connection_error is not None:
            raise self.connection_error
        if self.probe_error is not None:
            return {"success": False, "error": self.probe_error}
        return {
            "success": True,
            "message": "CyberGuard DB Connection Test",
            "timestamp": datetime(2025, 1, 1, tzinfo=timezone.utc),
            "database": "cyberguard_test",
            "host": "localhost",
        }

    # -- statement dispatch --------------------------------------------------

    def execute(self, sql, params):
        params = tuple(params or ())
        self.calls.append((sql, params))
        if sql in self.fail_on:
            raise QueryError(sql, RuntimeError("forced failure"))
        if sql in self.canned:
            return self.canned[sql]
        return self._handlers[sql](*params)

    def _next_id(self, table):
        return max((row["id"] for row in self.tables[table]), default=0) + 1

    def _find_active_category(self, name):
        return [{"id": c["id"]} for c in self.tables["crime_categories"]
                if c["category_name"] == name and c["is_active"]]

    def _find_category_by_name(self, name):
        return [{"id": c["id"], "is_active": c["is_active"]} for c in self.tables["crime_categories"]
                if c["category_name"] == name]

    def _insert_category(self, name, icon, color, description):
        if any(c["category_name"] == name for c in self.tables["crime_categories"]):
            return []
        row = {"id": self._next_id("crime_categories"), "category_name": name, "category_icon": icon,
               "category_color": color, "description": description, "is_active": True}
        self.tables["crime_categories"].append(row)
        return [{"id": row["id"]}]

    def _seed_category(self, name, icon, color, description, severity):
        self._insert_category(name, icon, color, description)
        return []

    def _insert_location(self, latitude, longitude, city, region, country):
        row = {"id": self._next_id("locations"), "latitude": latitude, "longitude": longitude,
               "city": city, "region": region, "country": country, "location_type": "exact"}
        self.tables["locations"].append(row)
        return [{"id": row["id"]}]

    def _next_sequence(self, period, month_start, next_month):
        sequences = self.tables["report_sequences"]
        if period in sequences:
            sequences[period] += 1
        else:
            sequences[period] = 1 + sum(
                1 for r in self.tables["incident_reports"] if month_start <= r["created_at"] < next_month
            )
        return [{"last_value": sequences[period]}]

    def _insert_report(self, report_number, name, email, phone, category_id, description,
                       location_id, ip_address, user_agent, source, created_at):
        if any(r["report_number"] == report_number for r in self.tables["incident_reports"]):
            raise QueryError(INSERT_REPORT_SQL, RuntimeError("duplicate key value violates unique constraint"))
        if not any(c["id"] == category_id for c in self.tables["crime_categories"]):
            raise QueryError(INSERT_REPORT_SQL, RuntimeError("foreign key violation: crime_category_id"))
        if not any(loc["id"] == location_id for loc in self.tables["locations"]):
            raise QueryError(INSERT_REPORT_SQL, RuntimeError("foreign key violation: location_id"))
        row = {
            "id": self._next_id("incident_reports"), "report_number": report_number,
            "reporter_name": name, "reporter_email": email, "reporter_phone": phone,
            "crime_category_id": category_id, "incident_description": description,
            "location_id": location_id, "status": "pending", "priority": "medium",
            "ip_address": ip_address, "user_agent": user_agent, "submission_source": source,
            "is_public": True, "created_at": created_at,
        }
        self.tables["incident_reports"].append(row)
        return [{"id": row["id"]}]

    def _count_recent_by_ip(self, ip_address, since):
        count = sum(1 for r in self.tables["incident_reports"]
                    if r["ip_address"] == ip_address and r["created_at"] >= since)
        return [{"count": count}]

    def _insert_activity(self, user_id, action, details, ip_address, user_agent):
        self.tables["activity_log"].append({
            "user_id": user_id, "action": action, "details": details,
            "ip_address": ip_address, "user_agent": user_agent,
        })
        return []

    def _insert_admin(self, full_name, email, password_hash):
        if not any(u["email"] == email for u in self.tables["users"]):
            self.tables["users"].append({"full_name": full_name, "email": email,
                                         "user_type": "admin", "password_hash": password_hash})
        return []

    def _submission_stats(self, today, week_ago):
        reports = self.tables["incident_reports"]
        return [{
            "total_submissions": len(reports),
            "today_submissions": sum(1 for r in reports if r["created_at"] >= today),
            "week_submissions": sum(1 for r in reports if r["created_at"] >= week_ago),
        }]

    def _create_schema(self):
        self.schema_created = True
        return []

    def _existing_tables(self, names):
        return [{"table_name": name} for name in names if name in REQUIRED_TABLES]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def client(fake_db, monkeypatch):
    """TestClient without lifespan, so startup never touches a real database."""
    monkeypatch.delenv("TRUSTED_PROXIES", raising=False)
    from starlette.testclient import TestClient
    import main
    main.app.dependency_overrides[get_db] = lambda: fake_db
    yield TestClient(main.app, raise_server_exceptions=False)
    main.app.dependency_overrides.clear()


@pytest.fixture
def submission():
    return {
        "reporter_name": "Asha Mwita",
        "contact_info": "asha@example.com",
        "crime_type": "Phishing",
        "description": "Received an SMS asking for my mobile money PIN.",
        "latitude": "-6.7924",
        "longitude": "39.2083",
    }
