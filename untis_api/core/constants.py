# untis_api/core/constants.py

# --- API Endpoints ---
# All upstream URLs are derived from the configured server host.
JSONRPC_PATH = "/WebUntis/jsonrpc.do"
API_BASE_PATH = "/WebUntis/api"
TOKEN_PATH = f"{API_BASE_PATH}/token"
HOMEWORK_PATH = f"{API_BASE_PATH}/homeworks/lessons"
TIMETABLE_ENTRIES_PATH = f"{API_BASE_PATH}/rest/view/v1/timetable/entries"

# Client name reported to the JSON-RPC authenticate call
RPC_CLIENT_NAME = "WebUntisAPI"

# Cookie carrying the session id between calls
SESSION_COOKIE_NAME = "JSESSIONID"

# Resource type used for timetable lookups
TIMETABLE_RESOURCE_TYPE = "STUDENT"
TIMETABLE_FORMAT = 2

# --- HTTP Headers ---
DEFAULT_HEADERS = {
    "User-Agent": "WebUntisAPI/1.0",
    "Accept": "application/json",
}

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# --- Fallback values ---
UNKNOWN_SUBJECT = "Unknown Subject"
UNKNOWN_TEACHER = "Unknown Teacher"
UNKNOWN_ROOM = "Unknown Room"
UNKNOWN_DATE = "Unknown Date"
NO_DESCRIPTION = "No description"

# --- Grid entry vocabulary ---
STATUS_CANCELLED = "CANCELLED"
STATUS_ADDITIONAL = "ADDITIONAL"
TYPE_EXAM = "EXAM"
TYPE_ADDITIONAL_PERIOD = "ADDITIONAL_PERIOD"
ICON_HOMEWORK = "HOMEWORK"
ICON_EXAM = "EXAM"

# Positional slots of a grid entry: (key, short-name fallback)
TEACHER_SLOT = ("position1", UNKNOWN_TEACHER)
SUBJECT_SLOT = ("position2", UNKNOWN_SUBJECT)
ROOM_SLOT = ("position3", UNKNOWN_ROOM)

# --- Defaults ---
DEFAULT_HOMEWORK_DAYS = 7
DEFAULT_TIMETABLE_DAYS = 7
DEFAULT_UPCOMING_HOURS = 24
DEFAULT_TIMEOUT = 30.0
DEFAULT_DEBUG_DIR = "debug_payloads"

# Data-endpoint statuses meaning the session id is no longer accepted
SESSION_REJECTED_STATUSES = (401, 403)
