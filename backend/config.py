import logging
import os
import tempfile
from dotenv import load_dotenv

load_dotenv()


class Settings:
    PROJECT_NAME: str = "Statement Pipeline"
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # LLM provider: "openai" or "azure"
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")

    # Azure OpenAI
    AZURE_OPENAI_API_KEY: str = os.getenv("AZURE_OPENAI_API_KEY", "")
    AZURE_OPENAI_ENDPOINT: str = os.getenv("AZURE_OPENAI_ENDPOINT", "")
    AZURE_OPENAI_API_VERSION: str = os.getenv("AZURE_OPENAI_API_VERSION", "2024-12-01-preview")

    # Model tiers (cheap detection → primary extraction → escalation)
    LLM_DETECTION_MODEL: str = os.getenv("LLM_DETECTION_MODEL", "gpt-4o-mini")
    LLM_PRIMARY_MODEL: str = os.getenv("LLM_PRIMARY_MODEL", "gpt-4o-mini")
    LLM_ESCALATION_MODEL: str = os.getenv("LLM_ESCALATION_MODEL", "gpt-4o")
    LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
    LLM_MAX_RETRIES: int = int(os.getenv("LLM_MAX_RETRIES", "2"))
    LLM_RETRY_BACKOFF_SECONDS: float = float(os.getenv("LLM_RETRY_BACKOFF_SECONDS", "1.0"))
    LLM_MAX_OUTPUT_TOKENS: int = int(os.getenv("LLM_MAX_OUTPUT_TOKENS", "4096"))
    BANK_DETECTION_MAX_TOKENS: int = 20

    # Rupees per statement; escalation only while spend < half of this
    MAX_COST_PER_STATEMENT: float = float(os.getenv("MAX_COST_PER_STATEMENT", "5.0"))

    # Rupees per 1K tokens: (input, output)
    MODEL_PRICING: dict = {
        "gpt-4o-mini": (0.0015, 0.006),
        "gpt-4o": (0.05, 0.15),
    }

    # Decryption
    QPDF_PATH: str = os.getenv("QPDF_PATH", "qpdf")
    DECRYPT_TIMEOUT_SECONDS: float = float(os.getenv("DECRYPT_TIMEOUT_SECONDS", "20"))
    TEMP_DIR: str = os.getenv("TEMP_DIR", tempfile.gettempdir())

    # Text extraction
    PREVIEW_CHARS: int = 500
    SCANNED_MIN_CHARS: int = 100
    SCANNED_MIN_ALNUM_RATIO: float = 0.30

    # Learned password patterns (optional store)
    PATTERN_DB_URL: str = os.getenv("PATTERN_DB_URL", "sqlite:///./password_patterns.db")

    # Statements processed at once by process_many()
    STATEMENT_CONCURRENCY: int = int(os.getenv("STATEMENT_CONCURRENCY", "4"))


settings = Settings()


def configure_logging(level: str = None) -> None:
    """Configure root logging for host processes embedding the pipeline."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
