"""Application settings and validation."""

import os
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    DATABASE_URL: str
    STORAGE_ROOT: Path
    MAX_UPLOAD_BYTES: int
    LOGIN_RATE_LIMIT_PER_MIN: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    OPENAI_API_KEY: str
    OPENAI_BASE_URL: str
    OPENAI_MODEL: str
    OPENAI_TIMEOUT_SECONDS: float
    FCM_SERVER_KEY: str
    VOCAB_NOTIFICATIONS_ENABLED: bool
    VOCAB_SEND_TIME: str
    VOCAB_TIMEZONE: str
    VOCAB_RETRY_ATTEMPTS: int
    VOCAB_SELECTION_STRATEGY: str
    VOCAB_EXCLUDE_RECENT_DAYS: int
    OXFORD_BASE_URL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BACKEND_ROOT / 'app.db'}")
        self.STORAGE_ROOT = Path(os.getenv("STORAGE_ROOT", str(BACKEND_ROOT / "storage")))
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))  # largest allowed audio
        self.LOGIN_RATE_LIMIT_PER_MIN = int(os.getenv("LOGIN_RATE_LIMIT_PER_MIN", "20"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
        self.OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
        self.OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-3.5-turbo")
        self.OPENAI_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "30"))
        self.FCM_SERVER_KEY = os.getenv("FCM_SERVER_KEY", "")
        self.VOCAB_NOTIFICATIONS_ENABLED = os.getenv("VOCAB_NOTIFICATIONS_ENABLED", "true").lower() == "true"
        self.VOCAB_SEND_TIME = os.getenv("VOCAB_SEND_TIME", "09:00")
        self.VOCAB_TIMEZONE = os.getenv("VOCAB_TIMEZONE", "UTC")
        self.VOCAB_RETRY_ATTEMPTS = int(os.getenv("VOCAB_RETRY_ATTEMPTS", "3"))
        self.VOCAB_SELECTION_STRATEGY = os.getenv("VOCAB_SELECTION_STRATEGY", "priority").lower()
        self.VOCAB_EXCLUDE_RECENT_DAYS = int(os.getenv("VOCAB_EXCLUDE_RECENT_DAYS", "30"))
        self.OXFORD_BASE_URL = os.getenv(
            "OXFORD_BASE_URL", "https://www.oxfordlearnersdictionaries.com/definition/english/"
        )
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.VOCAB_SELECTION_STRATEGY not in ("priority", "random"):
            raise RuntimeError("VOCAB_SELECTION_STRATEGY must be 'priority' or 'random'")
        if self.VOCAB_RETRY_ATTEMPTS < 1:
            raise RuntimeError("VOCAB_RETRY_ATTEMPTS must be >= 1")


settings = Settings()
