# --- Agent output budget ---

DEFAULT_TOKEN_LIMIT = 200000
DEFAULT_TOKEN_WARNING_RATIO = 0.9
CHARS_PER_TOKEN = 4  # rough char-to-token ratio for estimation


# --- Approvals ---

APPROVAL_TIMEOUT = 30 * 60  # seconds
DEFAULT_REPO_LABEL = "current directory"


# --- Tasks ---

TASK_DESCRIPTION_LIMIT = 100
SUMMARY_MAX_LINES = 3
SUMMARY_FALLBACK = "Task completed successfully."
SUCCESS_INDICATORS = (
    "created",
    "added",
    "updated",
    "committed",
    "pushed",
    "installed",
    "completed",
    "done",
    "success",
    "finished",
)


# --- Stream status previews ---

TEXT_PREVIEW_CHARS = 100
TEXT_PREVIEW_MIN = 50  # shorter text records do not produce a status update


# --- Agents ---

CLAUDE_BINARY = "claude"
CODEX_MODEL = "gpt-4o-mini"
CODEX_TEMPERATURE = 0.2
CODEX_SYSTEM_PROMPT = (
    "You are ChatGPT Codex, an expert coding assistant. Provide concrete plans and code snippets. "
    "When suggesting shell commands, use fenced code blocks. Keep responses concise and actionable."
)
STREAM_READ_SIZE = 4096
TERMINATE_GRACE_SECONDS = 5.0
