"""Constants for the school feed client."""

# Server
DEFAULT_BASE_URL = "http://localhost:8080/school"
DEFAULT_REQUEST_TIMEOUT = 30  # seconds, total per request
DEFAULT_MAX_RETRIES = 2  # transport failures only, never HTTP errors
DEFAULT_RETRY_DELAY = 1.0  # seconds between transport retries
DEFAULT_SESSION_FILE = "~/.schoolfeed/session.json"

DEFAULT_HEADERS = {
	"Accept": "application/json",
	"Content-Type": "application/json",
}

# Endpoints
ENDPOINT_STUDENTS_BY_SECTION = "/getStudentBySection"
ENDPOINT_SUBMIT_EXAM_MARKS = "/submitExamMarks"
ENDPOINT_SUBMIT_ATTENDANCE = "/submitAttendance"

# Pagination
STUDENTS_PER_PAGE = 10

# Fields
FIELD_MARKS = "marks"
FIELD_REMARKS = "remarks"
FIELD_STATUS = "status"

MARKS_MIN = 0
MARKS_MAX = 100
DEFAULT_REMARKS = "N/A"
ATTENDANCE_DATE_FORMAT = "%Y-%m-%d"

# Validation failure categories
REASON_MISSING = "missing"
REASON_INVALID = "invalid"

# Submission failure categories
REASON_BUSY = "busy"
REASON_SERVER = "server"
REASON_CONNECTION = "connection"
REASON_CLOSED = "closed"
REASON_NOT_READY = "not_ready"

# Messages
MSG_MARKS_RANGE = f"Marks must be between {MARKS_MIN} and {MARKS_MAX}"
MSG_MISSING_ENTRIES = "Please enter {label} for all students on this page"
MSG_INVALID_ENTRIES = "Please correct invalid {label} entries"
MSG_PAGE_SUBMITTED = "{title} submitted successfully! Moving to next page..."
MSG_ALL_SUBMITTED = "All {label} submitted successfully!"
MSG_SUBMIT_FAILED = "Failed to submit {label}: {reason}. Please try again."
MSG_SUBMIT_IN_PROGRESS = "A submission is already in progress"
MSG_NO_ENTRIES = "No students found for this section"
MSG_LOAD_FAILED = "Failed to load students"

LABEL_CONTINUE = "Submit & Continue"
LABEL_SUBMIT_ALL = "Submit All {title}"

# Persisted session keys, as written at login
STORE_KEY_TOKEN = "userToken"
STORE_KEY_USER_DATA = "userData"
STORE_KEY_SUBJECTS = "subjectBySchool"
