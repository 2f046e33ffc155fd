from pydantic_settings import BaseSettings
from typing import List, Optional
from pathlib import Path

# Find .env file - check loanledger/ directory first, then project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent
PACKAGE_ENV = BASE_DIR / "loanledger" / ".env"
ROOT_ENV = BASE_DIR / ".env"

env_file = str(PACKAGE_ENV) if PACKAGE_ENV.exists() else (str(ROOT_ENV) if ROOT_ENV.exists() else ".env")


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str

    # JWT
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # SMTP
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: Optional[int] = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    FROM_EMAIL: Optional[str] = None
    REPLY_TO_EMAIL: Optional[str] = None
    ADMIN_REPORT_EMAILS: List[str] = []

    # Ledger rules
    DEFAULT_AFTER_DAYS_OVERDUE: int = 30
    LOAN_ID_PREFIX: str = "LN"

    # Scheduler
    ENABLE_SCHEDULER: bool = True
    OVERDUE_SWEEP_INTERVAL_MINUTES: int = 1440

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    AUDIT_LOG_DIR: Optional[str] = None

    class Config:
        env_file = env_file
        case_sensitive = True


settings = Settings()

