from pydantic_settings import BaseSettings
from typing import List, Optional
import os
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    # Application Settings
    APP_NAME: str = "SkinAI API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    # OpenAI
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_VISION_MODEL: str = "gpt-4o-mini"
    EMBEDDING_MODEL: str = "text-embedding-3-large"
    EMBEDDING_DIMENSION: int = 3072
    OPENAI_TIMEOUT_SECONDS: float = 60.0
    OPENAI_MAX_RETRIES: int = 2

    # Completion options per attempt
    ANALYSIS_TEMPERATURE: float = 0.4
    ANALYSIS_MAX_TOKENS: int = 1600
    JSON_REPAIR_TEMPERATURE: float = 0.2
    JSON_REPAIR_MAX_TOKENS: int = 1600
    RICHNESS_REPAIR_TEMPERATURE: float = 0.35
    RICHNESS_REPAIR_MAX_TOKENS: int = 1800

    # Richness rules
    MIN_AM_STEPS: int = 4
    MIN_PM_STEPS: int = 5
    MIN_PRODUCTS: int = 4
    WEEKLY_PLAN_SCHEMA: str = "minimal"  # "minimal" or "structured"
    MIN_WEEKLY_ENTRIES: Optional[int] = None  # None picks the variant default

    # Image processing
    MAX_IMAGE_BYTES: int = 10 * 1024 * 1024
    MAX_IMAGE_DIMENSION: int = 2048
    MAX_IMAGE_PIXELS: int = 50_000_000  # checked from the header, before decoding
    IMAGE_JPEG_QUALITY: int = 85

    # Retrieved context in the prompt
    CONTEXT_MAX_ENTRIES: int = 6
    CONTEXT_ENTRY_MAX_CHARS: int = 180

    # Embeddings
    ENABLE_EMBEDDINGS: bool = True

    # Vector index (Qdrant)
    USE_VECTOR_INDEX: bool = True
    QDRANT_URL: str = os.getenv("QDRANT_URL", "")
    QDRANT_API_KEY: str = os.getenv("QDRANT_API_KEY", "")
    QDRANT_COLLECTION: str = "skinai"
    VECTOR_TOP_K: int = 3

    # Database (analysis log)
    SKIP_DB: bool = os.getenv("SKIP_DB", "false").lower() == "true"
    MONGODB_URL: str = os.getenv("MONGODB_URL", "")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "skinai")

    # Redis (shared rate limit counters)
    REDIS_URL: str = os.getenv("REDIS_URL", "")

    # Rate Limiting
    RATE_LIMIT_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_MAX_CLIENTS: int = 10000

    # Monitoring
    ENABLE_METRICS: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Allow extra fields from .env file

    @property
    def database_configured(self) -> bool:
        return not self.SKIP_DB and bool(self.MONGODB_URL)

settings = Settings()
