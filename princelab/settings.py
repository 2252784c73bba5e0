from __future__ import annotations

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings
from pydantic import model_validator


class Settings(BaseSettings):
    """Project-wide configuration loaded from environment variables (.env optional)."""

    # General settings
    PORT: int = Field(3000, description="HTTP port for the webhook server")
    LOG_LEVEL: str = Field("DEBUG", description="Root log level for Loguru")
    LOG_DIR: str = Field("logs", description="Directory for app.log and debug.log")
    LOG_ROTATION: str = Field("1 MB", description="Loguru rotation policy for the file sinks")
    LOG_RETENTION: str = Field("10 days", description="Loguru retention policy for the file sinks")
    LOG_MASK_USER_KEYS: bool = Field(True, description="Mask sender phone numbers in every log sink")

    # LLM / Ollama
    OLLAMA_BASE_URL: HttpUrl = Field("http://localhost:11434", description="Base URL of the Ollama server")
    LLM_MODEL: str = Field("qwen3:8b", description="Model used for user-facing replies")
    SUMMARY_MODEL: str | None = Field(None, description="Model used for history summaries (defaults to LLM_MODEL)")
    TEMPERATURE: float = Field(0.5, description="LLM sampling temperature")
    TOP_P: float = Field(0.9, description="Nucleus sampling parameter (probability mass)")
    LLM_TIMEOUT: float = Field(60.0, description="Seconds before a completion request is abandoned")

    # WhatsApp Cloud API
    WHATSAPP_VERIFY_TOKEN: str = Field("princelab-verify", description="Token Meta echoes during webhook verification")
    WHATSAPP_ACCESS_TOKEN: str | None = Field(None, description="Bearer token for the Graph API")
    WHATSAPP_PHONE_NUMBER_ID: str | None = Field(None, description="Sending phone number id")
    WHATSAPP_API_URL: HttpUrl = Field("https://graph.facebook.com/v20.0", description="Graph API base URL")
    WHATSAPP_TIMEOUT: float = Field(10.0, description="Seconds before an outbound send is abandoned")

    # Bot behaviour
    REQUIRE_TRIGGER: bool = Field(True, description="Only answer messages starting with 'pl ' or '@princelab'")

    # Rate limiting
    PER_MIN_LIMIT: int = Field(6, description="Admitted model calls per user per rolling minute", ge=1)
    PER_HOUR_LIMIT: int = Field(60, description="Admitted model calls per user per rolling hour", ge=1)

    # Conversation memory
    HISTORY_LIMIT: int = Field(100, description="Hard cap on stored turns per user", ge=1)
    RECENT_RAW_LIMIT: int = Field(50, description="Most recent turns sent verbatim to the model", ge=1)
    MAX_TRACKED_USERS: int = Field(500, description="Users kept in memory before oldest-first eviction", ge=1)
    STRICT_INVARIANTS: bool = Field(
        False,
        description="Raise on conversation invariant violations instead of clamping (debug builds)",
    )

    # Summarisation
    SUMMARY_MAX_WORDS: int = Field(200, description="Upper bound requested for the running summary", ge=20)
    SUMMARY_TURN_CHARS: int = Field(
        1000,
        description="Each aged-out turn is clipped to this many characters before summarisation",
        ge=50,
    )

    # Lifecycle
    STALE_THRESHOLD: float = Field(24 * 3600, description="Seconds of inactivity before a user's state is dropped")
    SWEEP_INTERVAL: float = Field(30 * 60, description="Seconds between staleness sweeps", gt=0)

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
        "env_prefix": "",
    }

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------
    @model_validator(mode="after")
    def _check_windows(self):  # noqa: D401 – pydantic hook
        """The verbatim window must fit inside the stored history."""
        if self.RECENT_RAW_LIMIT > self.HISTORY_LIMIT:
            raise ValueError(
                f"RECENT_RAW_LIMIT ({self.RECENT_RAW_LIMIT}) cannot exceed HISTORY_LIMIT ({self.HISTORY_LIMIT})."
            )
        return self


settings = Settings()
