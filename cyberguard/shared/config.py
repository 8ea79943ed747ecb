import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()


@dataclass
class DatabaseConfig:
    """Database connection settings. `dsn` wins over the individual fields when set."""
    host: str = "localhost"
    port: int = 5432
    database: str = "cyberguard_db"
    user: str = "postgres"
    password: str = ""
    charset: str = "utf8"
    dsn: Optional[str] = None
    min_pool_size: int = 1
    max_pool_size: int = 20
    command_timeout: float = 60
    connect_timeout: float = 10

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        config = cls(
            host=os.getenv("DB_HOST", cls.host),
            port=int(os.getenv("DB_PORT", str(cls.port))),
            database=os.getenv("DB_NAME", cls.database),
            user=os.getenv("DB_USER", cls.user),
            password=os.getenv("DB_PASS", cls.password),
            charset=os.getenv("DB_CHARSET", cls.charset),
            dsn=os.getenv("DATABASE_URL") or None,
            min_pool_size=int(os.getenv("DB_POOL_MIN", str(cls.min_pool_size))),
            max_pool_size=int(os.getenv("DB_POOL_MAX", str(cls.max_pool_size))),
        )
        if config.dsn:
            logger.info("DatabaseConfig: using DATABASE_URL")
        else:
            logger.info(f"DatabaseConfig: {config.user}@{config.host}:{config.port}/{config.database}")
        return config

    def connect_kwargs(self) -> dict:
        """Keyword arguments for asyncpg.create_pool"""
        kwargs = {
            "min_size": self.min_pool_size,
            "max_size": self.max_pool_size,
            "command_timeout": self.command_timeout,
            "timeout": self.connect_timeout,
            "server_settings": {"client_encoding": self.charset},
        }
        if self.dsn:
            kwargs["dsn"] = self.dsn
        else:
            kwargs.update(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
            )
        return kwargs


def trusted_proxies() -> frozenset:
    """Peers allowed to set X-Forwarded-For / X-Real-IP, from comma-separated TRUSTED_PROXIES"""
    raw = os.getenv("TRUSTED_PROXIES", "")
    return frozenset(entry.strip() for entry in raw.split(",") if entry.strip())
