"""
Nest Trend Monitor - Configuration

Copy this file to config_local.py and fill in your credentials.
config_local.py is gitignored and will override these defaults.
"""

import os
from pathlib import Path

# =============================================================================
# GOOGLE SMART DEVICE MANAGEMENT (SDM) CREDENTIALS
# =============================================================================
# OAuth client from the Google Cloud console, plus a long-lived refresh token
# obtained once through the Device Access partner connection flow.
NEST_CLIENT_ID = os.getenv("NEST_CLIENT_ID", "")
NEST_CLIENT_SECRET = os.getenv("NEST_CLIENT_SECRET", "")
NEST_REFRESH_TOKEN = os.getenv("NEST_REFRESH_TOKEN", "")
NEST_PROJECT_ID = os.getenv("NEST_PROJECT_ID", "")

NEST_TOKEN_URL = os.getenv("NEST_TOKEN_URL", "https://oauth2.googleapis.com/token")
NEST_API_BASE = os.getenv("NEST_API_BASE", "https://smartdevicemanagement.googleapis.com/v1")

# Token refresh: total attempts, and the base wait between them (seconds).
# Wait grows linearly: 1s after the first failure, 2s after the second.
TOKEN_RETRY_ATTEMPTS = 3
TOKEN_RETRY_BACKOFF_SECONDS = 1

# Applies to every outbound HTTP request
HTTP_TIMEOUT_SECONDS = 10

# =============================================================================
# PUSHOVER NOTIFICATIONS
# =============================================================================
# Create an application at https://pushover.net/apps to get the token
PUSHOVER_ENABLED = True
PUSHOVER_USER = os.getenv("PUSHOVER_USER", "")
PUSHOVER_TOKEN = os.getenv("PUSHOVER_TOKEN", "")
PUSHOVER_TITLE = "Nest Alert"

# Emergency-priority messages repeat every RETRY seconds until acknowledged
# or EXPIRE seconds have passed
PUSHOVER_RETRY_SECONDS = 60
PUSHOVER_EXPIRE_SECONDS = 3600

# =============================================================================
# SAMPLE HISTORY STORE
# =============================================================================
# "redis" (shared, survives restarts of any host) or "sqlite" (local file)
STORE_BACKEND = os.getenv("STORE_BACKEND", "redis")

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Keys are laid out as "<namespace>:<device_id>:temps"
HISTORY_NAMESPACE = os.getenv("HISTORY_NAMESPACE", "nest")

DATA_DIR = Path(__file__).parent / "data"
DATABASE_PATH = Path(os.getenv("DATABASE_PATH", str(DATA_DIR / "nest_history.db")))

# =============================================================================
# LOGGING
# =============================================================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# =============================================================================
# OVERRIDE WITH LOCAL CONFIG
# =============================================================================
try:
    from config_local import *
except ImportError:
    pass
