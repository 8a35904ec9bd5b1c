from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application configuration loaded from environment variables / .env file."""

    app_name: str = "Document Verification API"
    app_env: str = "development"
    app_port: int = 8000
    frontend_url: str = "http://localhost:3000"

    # Database (SQLite for local dev)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./docverify_dev.db",
        alias="DATABASE_URL",
    )
    auto_create_tables: bool = Field(default=True, alias="AUTO_CREATE_TABLES")

    # Verification queue
    ocr_concurrency: int = Field(default=2, alias="OCR_CONCURRENCY")
    verify_on_startup: bool = Field(default=True, alias="VERIFY_ON_STARTUP")

    # Document fetch / text extraction
    fetch_timeout_seconds: float = Field(default=20.0, alias="FETCH_TIMEOUT_SECONDS")
    min_page_text_chars: int = Field(
        default=20, alias="MIN_PAGE_TEXT_CHARS",
    )  # Below this a PDF page is rasterized and OCRed
    raster_scale: float = Field(default=2.0, alias="RASTER_SCALE")
    ocr_language: str = Field(default="eng", alias="OCR_LANGUAGE")

    # Local model (Ollama)
    ollama_url: str | None = Field(default=None, alias="OLLAMA_URL")
    ollama_model: str = Field(default="llama3.1:8b", alias="OLLAMA_MODEL")
    ollama_timeout: float = Field(default=25.0, alias="OLLAMA_TIMEOUT")

    # Hosted model (OpenAI)
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4.1-mini", alias="OPENAI_MODEL")
    openai_max_tokens: int = Field(default=800, alias="OPENAI_MAX_TOKENS")
    openai_timeout: int = Field(default=60, alias="OPENAI_TIMEOUT")

    llm_max_input_chars: int = Field(default=6000, alias="LLM_MAX_INPUT_CHARS")

    # Decision scoring. Empirical constants, kept configurable.
    base_confidence: float = Field(default=0.30, alias="BASE_CONFIDENCE")
    max_confidence: float = Field(default=0.98, alias="MAX_CONFIDENCE")
    approve_confidence_floor: float = Field(
        default=0.82, alias="APPROVE_CONFIDENCE_FLOOR",
    )
    approve_threshold: float = Field(default=0.80, alias="APPROVE_THRESHOLD")
    failure_confidence: float = Field(default=0.3, alias="FAILURE_CONFIDENCE")
    policy_number_min_length: int = Field(default=4, alias="POLICY_NUMBER_MIN_LENGTH")

    # Expiry sweep
    expired_confidence: float = Field(default=0.35, alias="EXPIRED_CONFIDENCE")
    expiring_soon_days: int = Field(default=7, alias="EXPIRING_SOON_DAYS")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
    }

    @property
    def local_model_enabled(self) -> bool:
        return bool(self.ollama_url and self.ollama_url.strip())

    @property
    def ai_enabled(self) -> bool:
        """Hosted extraction is available only when an OpenAI key is configured."""
        return bool(self.openai_api_key)

    @property
    def worker_count(self) -> int:
        return max(self.ocr_concurrency, 1)

settings = Settings()
