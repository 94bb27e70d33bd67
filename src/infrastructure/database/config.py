"""Database Configuration.

PostgreSQL connection settings for the audit store.
"""

import os
from dataclasses import dataclass


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "prescription_safety"
    username: str = "prescription_safety"
    password: str = "prescription_safety_dev"

    # Connection pool settings
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30

    # Echo SQL queries (for debugging)
    echo: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create configuration from environment variables."""
        return cls(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=int(os.getenv("POSTGRES_PORT", "5432")),
            database=os.getenv("POSTGRES_DB", "prescription_safety"),
            username=os.getenv("POSTGRES_USER", "prescription_safety"),
            password=os.getenv("POSTGRES_PASSWORD", "prescription_safety_dev"),
            pool_size=int(os.getenv("POSTGRES_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("POSTGRES_MAX_OVERFLOW", "10")),
            echo=os.getenv("POSTGRES_ECHO", "false").lower() == "true",
        )

    def get_url(self) -> str:
        """Async (asyncpg) connection URL."""
        return (
            f"postgresql+asyncpg://{self.username}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )
