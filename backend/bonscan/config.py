from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # App
    ENV: str = "development"

    # Database (corrections store)
    DATABASE_URL: str = "sqlite+aiosqlite:///./bonscan.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Gemini (raw text + structured draft)
    GEMINI_API_KEY: str | None = None  # Brak klucza = OCR tekstu niedostępny, draft niemożliwy
    GEMINI_MODEL: str = "gemini-2.5-flash"  # Domyślny model
    GEMINI_TIMEOUT: int = 30  # Timeout w sekundach
    GEMINI_TEMPERATURE: float = 0.1

    # OCR
    OCR_MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10MB
    OCR_RAW_TEXT_PROMPT_CHARS: int = 2000  # Ile znaków surowego tekstu trafia do promptu

    # Categorization Engine
    CATEGORIZATION_KEYWORD_CONFIDENCE: float = 0.9
    CATEGORIZATION_STORE_PATTERN_CONFIDENCE: float = 0.85
    CATEGORIZATION_DEFAULT_CONFIDENCE: float = 0.1
    CATEGORIZATION_REVIEW_THRESHOLD: float = 0.8  # Poniżej progu pozycja idzie do ręcznej weryfikacji
    CATEGORIZATION_BATCH_SIZE: int = 10
    CATEGORIZATION_BATCH_DELAY: float = 0.1  # Sekundy pomiędzy paczkami
    CATEGORIZATION_FALLBACK_CATEGORY_ID: str = "other"

    model_config = {
        "env_file": ".env",
        "extra": "ignore"
    }

settings = Settings()
