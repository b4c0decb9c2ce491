"""
Centralized configuration for domain-sync.
All settings come from environment variables for 12-factor deployment.
"""

import os


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///domain_sync.db")

# ---------------------------------------------------------------------------
# Domain intelligence provider
# ---------------------------------------------------------------------------
DOMAIN_INFO_URL = os.environ.get("DOMAIN_INFO_URL", "").strip()
DOMAIN_INFO_KEY = os.environ.get("DOMAIN_INFO_KEY", "").strip()
FETCH_TIMEOUT_SECONDS = float(os.environ.get("FETCH_TIMEOUT_SECONDS", "5"))
# Retries are only attempted for transport errors and 429/5xx responses.
FETCH_MAX_RETRIES = int(os.environ.get("FETCH_MAX_RETRIES", "2"))
FETCH_RETRY_BACKOFF_SECONDS = float(os.environ.get("FETCH_RETRY_BACKOFF_SECONDS", "1"))

# ---------------------------------------------------------------------------
# Job queue
# ---------------------------------------------------------------------------
JOB_BATCH_SIZE = int(os.environ.get("JOB_BATCH_SIZE", "20"))
JOB_RETRY_CUTOFF_SECONDS = int(os.environ.get("JOB_RETRY_CUTOFF_SECONDS", "60"))
# An in_progress job older than this is considered abandoned and re-queued.
JOB_LEASE_SECONDS = int(os.environ.get("JOB_LEASE_SECONDS", "900"))
BATCH_CONCURRENCY = max(1, int(os.environ.get("BATCH_CONCURRENCY", "1")))

# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
CHANNEL_TIMEOUT_SECONDS = float(os.environ.get("CHANNEL_TIMEOUT_SECONDS", "5"))
NOTIFICATION_RETENTION_DAYS = int(os.environ.get("NOTIFICATION_RETENTION_DAYS", "30"))
NOTIFICATION_DISPATCH_LIMIT = int(os.environ.get("NOTIFICATION_DISPATCH_LIMIT", "100"))
FREE_PLAN_NAME = os.environ.get("FREE_PLAN_NAME", "free").strip().lower()

# SMTP (email channel)
SMTP_HOST = os.environ.get("SMTP_HOST", "").strip()
SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
SMTP_USERNAME = os.environ.get("SMTP_USERNAME", "")
SMTP_PASSWORD = os.environ.get("SMTP_PASSWORD", "")
SMTP_FROM = os.environ.get("SMTP_FROM", "notifications@localhost")
SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", True)
EMAIL_SUBJECT = os.environ.get("EMAIL_SUBJECT", "Domain change detected")

# HTTP channel gateways
SIGNAL_API_URL = os.environ.get("SIGNAL_API_URL", "").strip()
PUSH_GATEWAY_URL = os.environ.get("PUSH_GATEWAY_URL", "").strip()
TELEGRAM_API_BASE = os.environ.get("TELEGRAM_API_BASE", "https://api.telegram.org").rstrip("/")

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------
PORT = int(os.environ.get("PORT", "8001"))
RUN_MODE = os.environ.get("RUN_MODE", "api").strip().lower()
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").strip().upper()
