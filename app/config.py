from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Get the backend directory (parent of app directory)
BACKEND_DIR = Path(__file__).parent.parent
ENV_FILE = BACKEND_DIR / ".env"

class Settings(BaseSettings):
    # Server settings (non-confidential, can have defaults)
    host: str = "0.0.0.0"
    port: int = 3000
    timezone: str = "America/Argentina/Buenos_Aires"

    # Database settings - sqlite by default, postgresql://... in production
    database_url: str = "sqlite:///./library.db"
    database_echo: bool = False

    # JWT settings - confidential values from .env
    jwt_secret_key: str  # Required from .env (confidential - no default)
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 1440

    # Loan policy
    loan_days: int = 7
    member_request_loan_days: int = 7  # self-service requests use the same window
    late_fee_per_day: int = 10
    damage_fee: int = 100

    # Account policy
    password_min_length: int = 6
    password_change_cooldown_minutes: int = 5
    registration_token_hours: int = 24

    # Outbound email - skipped when no webhook is configured
    email_webhook_url: Optional[str] = None
    email_timeout_seconds: float = 10.0
    frontend_url: str = "http://localhost:5173"

    # Overdue sweep job
    overdue_sweep_enabled: bool = True
    overdue_sweep_interval_minutes: int = 60

    class Config:
        env_file = str(ENV_FILE) if ENV_FILE.exists() else ".env"
        case_sensitive = False

settings = Settings()
