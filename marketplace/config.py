import os
from pathlib import Path
from dotenv import load_dotenv
from fastapi.security import HTTPBearer

BASE_DIR = Path(__file__).resolve().parent.parent  # -> project root

# Load .env explicitly from project root
load_dotenv(BASE_DIR / ".env")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    PROJECT_NAME = "Marketplace Backend"
    API_VER = os.getenv("API_VER", "1.0")

    DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'marketplace.db'}")

    JWT_SECRET = os.getenv("JWT_SECRET")
    ALGORITHM = os.getenv("ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 30))
    PASSWORD_RESET_TOKEN_EXPIRE_MINUTES = int(os.getenv("PASSWORD_RESET_TOKEN_EXPIRE_MINUTES", 15))
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 11))

    OTP_EXPIRE_MINUTES = int(os.getenv("OTP_EXPIRE_MINUTES", 5))
    OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", 5))
    OTP_LENGTH = int(os.getenv("OTP_LENGTH", 4))
    # Demo/staging only: every OTP gets this code instead of a random one.
    OTP_FIXED_CODE = os.getenv("OTP_FIXED_CODE") or None

    SPACES_REGION = os.getenv("SPACES_REGION")
    SPACES_ENDPOINT = os.getenv("SPACES_ENDPOINT")
    SPACES_KEY = os.getenv("SPACES_KEY")
    SPACES_SECRET = os.getenv("SPACES_SECRET")
    SPACES_NAME = os.getenv("SPACES_NAME")
    SPACES_CDN_URL = (os.getenv("SPACES_CDN_URL") or "").rstrip("/")
    SPACES_BASE_PATH = (os.getenv("SPACES_BASE_PATH") or "marketplace").strip("/")
    MAX_IMAGE_SIZE_MB = int(os.getenv("MAX_IMAGE_SIZE_MB", 10))
    THUMBNAIL_SIZE = int(os.getenv("THUMBNAIL_SIZE", 200))

    SMS_API_URL = os.getenv("SMS_API_URL", "https://api.taqnyat.sa/v1/messages")
    SMS_API_TOKEN = os.getenv("SMS_API_TOKEN")
    SMS_SENDER = os.getenv("SMS_SENDER", "Marketplace")

    RATE_LIMIT_ENABLED = _env_flag("RATE_LIMIT_ENABLED", "true")
    OTP_RATE_LIMIT = os.getenv("OTP_RATE_LIMIT", "5/15 minutes")
    LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "10/15 minutes")
    LOGOUT_RATE_LIMIT = os.getenv("LOGOUT_RATE_LIMIT", "5/15 minutes")

    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
    SEED_ON_STARTUP = _env_flag("SEED_ON_STARTUP", "true")
    CLEANUP_ENABLED = _env_flag("CLEANUP_ENABLED", "true")
    CLEANUP_INTERVAL_MINUTES = int(os.getenv("CLEANUP_INTERVAL_MINUTES", 60))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    bearer_scheme = HTTPBearer(auto_error=False)
    cors_origins = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]


settings = Settings()
