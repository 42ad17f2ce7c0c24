"""
Constants for Vivienda Concierge
"""

from enum import IntEnum


# HTTP Status Codes
class HTTPStatus(IntEnum):
    OK = 200
    FOUND = 302
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    INTERNAL_SERVER_ERROR = 500


# Google Drive
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DRIVE_SCOPE = "https://www.googleapis.com/auth/drive"
PROPERTIES_ROOT_FOLDER = "Viviendas"
ARCHIVE_ROOT_FOLDER = "Archivo"

# Catalog
CATALOG_FILE_NAME = ".properties.json"
CATALOG_VERSION = 1
CATALOG_MAX_WRITE_ATTEMPTS = 3

# Years
MIN_YEAR = 1900
MAX_YEARS_AHEAD = 10

# Diagnostics (in seconds)
STATUS_CHECK_TIMEOUT = 5

# Self-test waits (in seconds)
SELF_TEST_INITIAL_WAIT = 2
SELF_TEST_RETRY_WAIT = 3
SELF_TEST_SETTLE_WAIT = 1
SELF_TEST_MAX_LOOKUPS = 3
SELF_TEST_TOTAL_STEPS = 7

# OAuth re-authorization
OAUTH_SESSION_TTL = 10 * 60  # 10 minutes
OAUTH_CALLBACK_PATH = "/oauth/google/callback"
OAUTH_START_PATH = "/oauth/google/start"
DEFAULT_PORT = 8080

# Telegram
WEBHOOK_PATH = "/telegram/webhook"
WEBHOOK_SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"
DEV_PREFIX = "DEV:: "

# Callback data prefixes
BULK_CALLBACK_PREFIX = "bulk_"
INDIVIDUAL_CALLBACK_PREFIX = "individual_"
SELF_TEST_CALLBACK_PREFIX = "selftest_"
GOOGLE_LOGIN_CALLBACK_PREFIX = "google_login_"
