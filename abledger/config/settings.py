"""
Configuration settings for ABLedger.

This module provides the configuration management for the differential-testing
state store. It defines the database location, SQLite connection tuning and
logging settings.

The configuration supports multiple environments (development, production, testing)
selected through the ABL_ENV environment variable, and provides validation to catch
obviously broken values before the store opens a database.
"""

import os
from typing import Dict, Any, List


class Settings:
    """Store configuration settings"""

    FRAMEWORK_NAME = "abledger"

    # Database settings
    DATABASE_URL = os.getenv("ABL_DATABASE_URL", "sqlite:///abledger.db")
    SQL_ECHO = os.getenv("ABL_SQL_ECHO", "0") == "1"  # echo emitted SQL

    # SQLite connection tuning, applied on every new connection
    SQLITE_JOURNAL_MODE = "WAL"  # better write-concurrency
    SQLITE_SYNCHRONOUS = "NORMAL"  # fsync only in critical moments
    SQLITE_BUSY_TIMEOUT_MS = 5000  # wait this long for a competing writer
    SQLITE_FOREIGN_KEYS = True

    # Logging settings
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def get_storage_config(cls) -> Dict[str, Any]:
        """Get storage configuration"""
        return {
            "database_url": cls.DATABASE_URL,
            "echo": cls.SQL_ECHO,
            "sqlite": {
                "journal_mode": cls.SQLITE_JOURNAL_MODE,
                "synchronous": cls.SQLITE_SYNCHRONOUS,
                "busy_timeout_ms": cls.SQLITE_BUSY_TIMEOUT_MS,
                "foreign_keys": cls.SQLITE_FOREIGN_KEYS
            }
        }

    @classmethod
    def validate_config(cls) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if not cls.DATABASE_URL:
            errors.append("DATABASE_URL must be set")

        if cls.SQLITE_BUSY_TIMEOUT_MS < 0:
            errors.append("SQLITE_BUSY_TIMEOUT_MS must not be negative")

        if cls.SQLITE_JOURNAL_MODE.upper() not in ["DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"]:
            errors.append("SQLITE_JOURNAL_MODE must be a valid SQLite journal mode")

        if cls.SQLITE_SYNCHRONOUS.upper() not in ["OFF", "NORMAL", "FULL", "EXTRA"]:
            errors.append("SQLITE_SYNCHRONOUS must be one of: OFF, NORMAL, FULL, EXTRA")

        if cls.LOG_LEVEL.upper() not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            errors.append("LOG_LEVEL must be a standard logging level name")

        return errors


# Environment-specific settings
class DevelopmentSettings(Settings):
    """Development environment settings"""
    LOG_LEVEL = "DEBUG"


class ProductionSettings(Settings):
    """Production environment settings"""
    LOG_LEVEL = "WARNING"
    SQLITE_BUSY_TIMEOUT_MS = 15000


class TestingSettings(Settings):
    """Testing environment settings"""
    LOG_LEVEL = "DEBUG"
    DATABASE_URL = "sqlite://"  # in-memory
    SQLITE_JOURNAL_MODE = "MEMORY"


# Get settings based on environment
def get_settings() -> Settings:
    """Get settings based on environment variable"""
    env = os.getenv("ABL_ENV", "development").lower()

    if env == "production":
        return ProductionSettings()
    elif env == "testing":
        return TestingSettings()
    else:
        return DevelopmentSettings()


# Global settings instance
settings = get_settings()
