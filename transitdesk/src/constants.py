"""
Application configuration and constants for TransitDesk API Server.

This module centralizes environment-based configuration, resource limits,
regular expressions and other constants.

Configuration values can be overridden via environment variables.
"""

from os import environ


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "TransitDesk API Server"
API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# PostgreSQL configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "postgres")

# A full SQLAlchemy URL takes precedence over the PSQL_* parts
DB_URL = environ.get(
    "DB_URL",
    f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}",
)


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@transitdesk.com")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "transitdesk")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "transitdesk-api-server")


# ---------------------------------------------------------------------------
# Redis configuration
# ---------------------------------------------------------------------------
REDIS_HOST = environ.get("REDIS_HOST", "localhost")
REDIS_PORT = environ.get("REDIS_PORT", "6379")
REDIS_PASSWORD = environ.get("REDIS_PASSWORD", "password")


# ---------------------------------------------------------------------------
# Token configuration
# ---------------------------------------------------------------------------
JWT_SECRET_KEY = environ.get("JWT_SECRET_KEY")
JWT_ALGORITHM = environ.get("JWT_ALGORITHM", "HS256")
TOKEN_VALIDITY = 24 * 60 * 60  # Token validity (in seconds, 1 day)


# ---------------------------------------------------------------------------
# Superadmin bootstrap
# ---------------------------------------------------------------------------
SUPERADMIN_USERNAME = environ.get("SUPERADMIN_USERNAME", "Super Admin")
SUPERADMIN_EMAIL = environ.get("SUPERADMIN_EMAIL")
SUPERADMIN_PASSWORD = environ.get("SUPERADMIN_PASSWORD")
# This account can be neither deleted nor have its email or role changed
PROTECTED_SUPERADMIN_EMAIL = environ.get(
    "PROTECTED_SUPERADMIN_EMAIL", SUPERADMIN_EMAIL
)


# ---------------------------------------------------------------------------
# Resource limits
# ---------------------------------------------------------------------------
MIN_DRIVERS_PER_VEHICLE = 1
MAX_DRIVERS_PER_VEHICLE = 2


# ---------------------------------------------------------------------------
# Regex constants (input validation)
# ---------------------------------------------------------------------------
REGEX_PASSWORD = r"^[a-zA-Z0-9-+,.@_$%&*#!^=/?]*$"
# GTFS times may run past midnight, e.g. 25:35:00
REGEX_GTFS_TIME = r"^\d{1,2}:[0-5]\d:[0-5]\d$"


# ---------------------------------------------------------------------------
# Redis mutex lock constants
# ---------------------------------------------------------------------------
MUTEX_LOCK_TIMEOUT = 10  # Lock timeout (in seconds)
MUTEX_LOCK_MAX_WAIT_TIME = 60  # Max blocking wait time (in seconds)


# ---------------------------------------------------------------------------
# Messaging
# ---------------------------------------------------------------------------
ADMIN_SENDER = "Admin"
PARENT_SENDER_PREFIX = "Parent:"
