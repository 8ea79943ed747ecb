import logging

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
    -- Crime categories: created up front by the seed and lazily by submissions
    CREATE TABLE IF NOT EXISTS crime_categories (
        id SERIAL PRIMARY KEY,
        category_name VARCHAR(100) NOT NULL UNIQUE,
        category_icon VARCHAR(20),
        category_color VARCHAR(7) DEFAULT '#718096',
        description TEXT,
        severity_level VARCHAR(10) NOT NULL CHECK (severity_level IN ('Low', 'Medium', 'High', 'Critical')) DEFAULT 'Medium',
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    );

    -- Locations: one row per submitted report
    CREATE TABLE IF NOT EXISTS locations (
        id SERIAL PRIMARY KEY,
        latitude NUMERIC(10,8) NOT NULL CHECK (latitude BETWEEN -90 AND 90),
        longitude NUMERIC(11,8) NOT NULL CHECK (longitude BETWEEN -180 AND 180),
        address VARCHAR(500),
        city VARCHAR(100),
        region VARCHAR(100),
        country VARCHAR(100) DEFAULT 'Tanzania',
        postal_code VARCHAR(20),
        location_type VARCHAR(20) NOT NULL CHECK (location_type IN ('exact', 'approximate', 'general_area')) DEFAULT 'exact',
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    );

    -- Users: reporters, administrators and law enforcement
    CREATE TABLE IF NOT EXISTS users (
        id SERIAL PRIMARY KEY,
        full_name VARCHAR(255) NOT NULL,
        email VARCHAR(255) UNIQUE,
        phone VARCHAR(20),
        user_type VARCHAR(20) NOT NULL CHECK (user_type IN ('reporter', 'admin', 'law_enforcement')) DEFAULT 'reporter',
        registration_date TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
        is_verified BOOLEAN NOT NULL DEFAULT FALSE,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        last_login TIMESTAMP WITH TIME ZONE,
        password_hash VARCHAR(255),
        verification_token VARCHAR(100),
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    );

    -- Incident reports
    CREATE TABLE IF NOT EXISTS incident_reports (
        id SERIAL PRIMARY KEY,
        report_number VARCHAR(20) NOT NULL UNIQUE,
        reporter_name VARCHAR(255) NOT NULL,
        reporter_email VARCHAR(255),
        reporter_phone VARCHAR(255),
        user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
        crime_category_id INTEGER NOT NULL REFERENCES crime_categories(id) ON DELETE RESTRICT,
        custom_crime_type VARCHAR(100),
        incident_title VARCHAR(255),
        incident_description TEXT NOT NULL,
        incident_date DATE,
        incident_time TIME,
        location_id INTEGER NOT NULL REFERENCES locations(id) ON DELETE RESTRICT,
        estimated_loss NUMERIC(15,2) DEFAULT 0.00,
        currency VARCHAR(3) DEFAULT 'TZS',
        evidence_description TEXT,
        has_screenshots BOOLEAN NOT NULL DEFAULT FALSE,
        has_documents BOOLEAN NOT NULL DEFAULT FALSE,
        status VARCHAR(20) NOT NULL CHECK (status IN ('pending', 'under_review', 'investigating', 'resolved', 'closed', 'duplicate')) DEFAULT 'pending',
        priority VARCHAR(10) NOT NULL CHECK (priority IN ('low', 'medium', 'high', 'urgent')) DEFAULT 'medium',
        assigned_to INTEGER REFERENCES users(id) ON DELETE SET NULL,
        investigation_notes TEXT,
        resolution_notes TEXT,
        resolution_date TIMESTAMP WITH TIME ZONE,
        ip_address VARCHAR(45),
        user_agent TEXT,
        submission_source VARCHAR(50) DEFAULT 'web_form',
        is_anonymous BOOLEAN NOT NULL DEFAULT FALSE,
        is_verified BOOLEAN NOT NULL DEFAULT FALSE,
        is_public BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    );

    -- Last issued report sequence per calendar month (YYYYMM)
    CREATE TABLE IF NOT EXISTS report_sequences (
        period CHAR(6) PRIMARY KEY,
        last_value INTEGER NOT NULL,
        updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    );

    -- Activity log: best-effort audit trail
    CREATE TABLE IF NOT EXISTS activity_log (
        id SERIAL PRIMARY KEY,
        user_id INTEGER,
        action VARCHAR(255) NOT NULL,
        details TEXT,
        ip_address VARCHAR(45),
        user_agent TEXT,
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    );

    CREATE INDEX IF NOT EXISTS idx_locations_coordinates ON locations (latitude, longitude);
    CREATE INDEX IF NOT EXISTS idx_locations_city_region ON locations (city, region);
    CREATE INDEX IF NOT EXISTS idx_users_user_type ON users (user_type);
    CREATE INDEX IF NOT EXISTS idx_reports_status ON incident_reports (status);
    CREATE INDEX IF NOT EXISTS idx_reports_priority ON incident_reports (priority);
    CREATE INDEX IF NOT EXISTS idx_reports_category ON incident_reports (crime_category_id);
    CREATE INDEX IF NOT EXISTS idx_reports_created_at ON incident_reports (created_at);
    CREATE INDEX IF NOT EXISTS idx_reports_reporter_email ON incident_reports (reporter_email);
    CREATE INDEX IF NOT EXISTS idx_reports_assigned_to ON incident_reports (assigned_to);
    CREATE INDEX IF NOT EXISTS idx_reports_public ON incident_reports (is_public, status);
    CREATE INDEX IF NOT EXISTS idx_reports_location ON incident_reports (location_id);
    CREATE INDEX IF NOT EXISTS idx_reports_ip_created ON incident_reports (ip_address, created_at);
    CREATE INDEX IF NOT EXISTS idx_activity_action ON activity_log (action);
    CREATE INDEX IF NOT EXISTS idx_activity_created_at ON activity_log (created_at);
    CREATE INDEX IF NOT EXISTS idx_activity_user_id ON activity_log (user_id);
"""

REQUIRED_TABLES = ("crime_categories", "locations", "users", "incident_reports", "report_sequences", "activity_log")

EXISTING_TABLES_SQL = """
    SELECT table_name FROM information_schema.tables
    WHERE table_schema = current_schema() AND table_name = ANY($1::text[])
"""


async def create_tables(db):
    """Create tables for the incident portal"""
    try:
        async with db.session() as session:
            await session.begin_transaction()
            await session.query(SCHEMA_SQL)
            await session.commit()
            logger.info("Database tables and indexes created successfully.")
    except Exception as e:
        logger.error(f"Error creating tables: {str(e)}")
        raise


async def check_tables(db) -> dict:
    """Report whether every table the portal needs exists"""
    rows = await db.fetch_all(EXISTING_TABLES_SQL, (list(REQUIRED_TABLES),))
    present = {row["table_name"] for row in rows}
    missing = [name for name in REQUIRED_TABLES if name not in present]
    if missing:
        return {
            "status": "setup_required",
            "message": "Database tables need to be created.",
            "missing": missing,
        }
    return {"status": "ready", "message": "Database tables are properly initialized"}
