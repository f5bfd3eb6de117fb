import json
import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from foreman.agents.base import AgentKind
from foreman.constants import (
    APPROVAL_TIMEOUT,
    CLAUDE_BINARY,
    CODEX_MODEL,
    DEFAULT_TOKEN_LIMIT,
    DEFAULT_TOKEN_WARNING_RATIO,
)
from foreman.logging import LogLevel, get_logger

FOREMAN_DIR = Path.home() / ".foreman"
SETTINGS_PATH = FOREMAN_DIR / "settings.json"

_logger = get_logger(__name__)


def load_user_settings() -> dict:
    if not SETTINGS_PATH.exists():
        return {}
    try:
        return json.loads(SETTINGS_PATH.read_text())
    except (json.JSONDecodeError, OSError):
        _logger.warning("Failed to load user settings", exc_info=True)
        return {}


def save_user_settings(settings: dict) -> None:
    FOREMAN_DIR.mkdir(exist_ok=True)
    SETTINGS_PATH.write_text(json.dumps(settings, indent=2))


class Config(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FOREMAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
        populate_by_name=True,
    )

    # API keys, read from the standard env vars via aliases
    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")

    # Telegram bot token (optional) - no prefix, standard env var
    telegram_bot_token: str | None = Field(default=None, alias="TELEGRAM_BOT_TOKEN")

    # Bearer token for the HTTP API; auth is off when unset
    secret: str | None = None

    host: str = "127.0.0.1"
    port: int = 3000

    working_directory: Path = Field(default_factory=Path.cwd)

    # Agents
    agent: AgentKind = AgentKind.CLAUDE
    claude_binary: str = CLAUDE_BINARY
    codex_model: str = CODEX_MODEL

    # Output budget
    token_limit: int = DEFAULT_TOKEN_LIMIT
    token_warning_ratio: float = DEFAULT_TOKEN_WARNING_RATIO

    # Approvals
    approval_timeout: float = APPROVAL_TIMEOUT

    # Logging
    log_level: LogLevel = "INFO"
    log_json: bool = False

    # Notifiers (optional)
    notify_telegram_chat_id: str | None = None
    notify_command: str | None = None

    @field_validator("token_limit", mode="before")
    @classmethod
    def _fallback_token_limit(cls, v: object) -> object:
        try:
            limit = int(v)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return DEFAULT_TOKEN_LIMIT
        if limit <= 0:
            _logger.warning("Invalid token_limit %r, using %d", v, DEFAULT_TOKEN_LIMIT)
            return DEFAULT_TOKEN_LIMIT
        return limit

    @field_validator("token_warning_ratio", mode="before")
    @classmethod
    def _fallback_warning_ratio(cls, v: object) -> object:
        try:
            ratio = float(v)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return DEFAULT_TOKEN_WARNING_RATIO
        if not 0 < ratio <= 1:
            _logger.warning("Invalid token_warning_ratio %r, using %s", v, DEFAULT_TOKEN_WARNING_RATIO)
            return DEFAULT_TOKEN_WARNING_RATIO
        return ratio

    @field_validator("approval_timeout")
    @classmethod
    def _validate_approval_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"approval_timeout must be positive, got {v}")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v

    @property
    def agent_env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.anthropic_api_key:
            env["ANTHROPIC_API_KEY"] = self.anthropic_api_key
        return env


PERSIST_KEYS = frozenset(
    {
        "agent",
        "codex_model",
        "working_directory",
        "token_limit",
        "token_warning_ratio",
        "approval_timeout",
        "log_level",
        "notify_telegram_chat_id",
        "notify_command",
    }
)


def get_config() -> Config:
    settings = load_user_settings()

    # Build config: init args (settings.json) > env vars > defaults
    overrides = {k: settings[k] for k in PERSIST_KEYS if k in settings}
    return Config(**overrides)  # type: ignore - pydantic handles validation
