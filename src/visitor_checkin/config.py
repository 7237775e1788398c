"""
Runtime configuration for the visitor check-in backend.
Values come from the environment (or a local .env file).
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
POSTGRES_USER = os.getenv("POSTGRES_USER")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "localhost")
POSTGRES_PORT = int(os.getenv("POSTGRES_PORT", 5432))
POSTGRES_DB = os.getenv("POSTGRES_DB")

# HTTP
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")  # unset -> console only

# Redemption
REDEEM_MAX_ATTEMPTS = int(os.getenv("REDEEM_MAX_ATTEMPTS", 10))
REDEEM_RETRY_BACKOFF_SECONDS = float(os.getenv("REDEEM_RETRY_BACKOFF_SECONDS", 0.01))

# Notifications
NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", 10))

# UI hints handed back to the front-end
TOAST_DISMISS_SECONDS = int(os.getenv("TOAST_DISMISS_SECONDS", 5))
SCANNER_FPS = int(os.getenv("SCANNER_FPS", 10))
SCANNER_QRBOX_SIZE = int(os.getenv("SCANNER_QRBOX_SIZE", 250))
SCANNER_ASPECT_RATIO = float(os.getenv("SCANNER_ASPECT_RATIO", 1.0))
