import os
import logging

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# name, icon, color, description, severity
CRIME_CATEGORIES = [
    ("Identity Theft", "🆔", "#e53e3e", "Unauthorized use of personal information", "High"),
    ("Online Fraud", "💳", "#dd6b20", "Financial fraud conducted online", "High"),
    ("Phishing", "🎣", "#d69e2e", "Fraudulent attempts to obtain sensitive information", "Medium"),
    ("Ransomware", "🔒", "#9f7aea", "Malicious software that encrypts files for ransom", "Critical"),
    ("Cyberbullying", "😢", "#ed64a6", "Harassment or bullying using digital platforms", "Medium"),
    ("Data Breach", "📊", "#38b2ac", "Unauthorized access to confidential data", "Critical"),
    ("Social Engineering", "🕵️", "#4299e1", "Manipulation to divulge confidential information", "High"),
    ("Malware", "🦠", "#f56565", "Malicious software designed to damage systems", "High"),
    ("DDoS Attack", "⚡", "#48bb78", "Distributed Denial of Service attacks", "Medium"),
    ("Other", "🔍", "#718096", "Other types of cybercrime not listed above", "Medium"),
]

INSERT_CATEGORY_SEED_SQL = """
    INSERT INTO crime_categories (category_name, category_icon, category_color, description, severity_level)
    VALUES ($1, $2, $3, $4, $5)
    ON CONFLICT (category_name) DO NOTHING
"""

INSERT_ADMIN_SQL = """
    INSERT INTO users (full_name, email, user_type, password_hash, is_verified, is_active)
    VALUES ($1, $2, 'admin', $3, TRUE, TRUE)
    ON CONFLICT (email) DO NOTHING
"""


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


async def seed_data(db):
    """Seed reference categories and, when configured, the administrator account"""
    try:
        logger.info("Starting database seeding process.")
        async with db.session() as session:
            await session.begin_transaction()
            for category in CRIME_CATEGORIES:
                await session.query(INSERT_CATEGORY_SEED_SQL, category)
            logger.info(f"Seeded {len(CRIME_CATEGORIES)} crime categories (existing rows kept).")

            admin_email = os.getenv("ADMIN_EMAIL", "admin@cyberguard.co.tz")
            admin_password = os.getenv("ADMIN_PASSWORD")
            if admin_password:
                await session.query(
                    INSERT_ADMIN_SQL,
                    (os.getenv("ADMIN_NAME", "System Administrator"), admin_email, hash_password(admin_password))
                )
                logger.info(f"Administrator '{admin_email}' seeded.")
            else:
                logger.info("ADMIN_PASSWORD not set. Skipping administrator seeding.")
            await session.commit()
    except Exception as e:
        logger.error(f"Error seeding database: {e}")
        raise
