from typing import List, Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    STORE_BACKEND: str = "memory"
    DATABASE_URL: str = "postgresql+psycopg://user:password@db/deepscan"

    MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024
    ALLOWED_MIME_TYPES: List[str] = [
        "image/jpeg",
        "image/png",
        "video/mp4",
        "video/quicktime",
    ]

    SIMULATE_LATENCY: bool = True
    VIDEO_LATENCY_CAP_MS: int = 5000
    IMAGE_LATENCY_CAP_MS: int = 3000
    PRODUCER_SEED: Optional[int] = None
    RUN_MODELS_CONCURRENTLY: bool = False

    STUCK_JOB_TIMEOUT_SECONDS: float = 600
    RECOVERY_INTERVAL_SECONDS: float = 60
    RECOVER_ON_STARTUP: bool = True
    SEED_DEFAULT_MODELS: bool = True

    class Config:
        env_file = ".env"

settings = Settings()
