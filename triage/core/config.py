"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict

MAX_CLASSIFY_BATCH_SIZE = 80


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite:///./triage.db"

    # Queues
    CLASSIFY_QUEUE: str = "bb_classify_jobs"
    DRAFT_QUEUE: str = "bb_draft_jobs"
    DEADLETTER_QUEUE: str = "bb_deadletter_jobs"

    # Classify worker
    CLASSIFY_VT_SECONDS: int = 180
    CLASSIFY_MAX_ATTEMPTS: int = 6
    CLASSIFY_BATCH_SIZE: int = 40
    WORKER_TIME_BUDGET_MS: int = 50_000
    WORKER_POLL_INTERVAL: int = 10
    WORKER_LOOP_ENABLED: bool = False

    # Shared secret for the internal trigger endpoint (x-bb-worker-token)
    WORKER_TOKEN: str = ""

    # AI classification oracle
    AI_PROVIDER: str = "gateway"  # gateway | openai | gemini
    AI_GATEWAY_URL: str = ""  # OpenAI-compatible /chat/completions endpoint
    AI_API_KEY: str = ""
    AI_CLASSIFY_MODEL: str = "gemini-2.5-flash"
    AI_REQUEST_TIMEOUT_SECONDS: float = 25.0
    AI_RETRY_MAX_ATTEMPTS: int = 2
    AI_RETRY_BASE_DELAY: float = 0.5
    AI_RETRY_MAX_DELAY: float = 4.0

    # Logging
    LOG_LEVEL: str = "INFO"

    @property
    def classify_batch_size(self) -> int:
        """Batch size clamped to what a single invocation can handle."""
        return max(1, min(MAX_CLASSIFY_BATCH_SIZE, self.CLASSIFY_BATCH_SIZE))


settings = Settings()
