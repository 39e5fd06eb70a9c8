# accounts_api/core/config.py
import os
import logging
from dotenv import load_dotenv
from pathlib import Path
from typing import Optional, Dict, List
from pydantic_settings import BaseSettings

# --- Path Setup & .env Loading ---
# .env lives in the backend project root, two levels up from core
BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_PATH = BASE_DIR / '.env'

if ENV_PATH.is_file():
    load_dotenv(dotenv_path=ENV_PATH)
else:
    # Logger is not configured yet at this point
    print(f"Warning: .env file not found at {ENV_PATH}. Relying on system environment variables.")

# --- Pydantic Settings Class ---
class Settings(BaseSettings):
    PROJECT_NAME: str = "User Accounts API"
    DEBUG: bool = False
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"

    # Database Settings
    MONGODB_URL: Optional[str] = None
    DB_NAME: str = "accounts_dev"
    MONGODB_TLS: bool = False

    # Access tokens
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12

    # Roles
    ADMIN_ROLE_NAME: str = "admin"
    DEFAULT_ROLE_NAME: str = "user"
    ROLE_SUBROLES: Dict[str, List[str]] = {
        "admin": ["admin", "user"],
        "user": ["user"],
    }

    # Registration & password policy
    ALLOW_REGISTRATION: bool = True
    REQUIRE_EMAIL_VERIFICATION: bool = True
    # Upper, lower, digit and symbol, at least 8 characters
    PASSWORD_STRENGTH_RE: str = r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[^A-Za-z0-9]).{8,}$"
    INVALID_PASSWORD_MESSAGE: str = (
        "Password must be at least 8 characters long and contain an uppercase letter, "
        "a lowercase letter, a digit and a symbol."
    )
    EMAIL_VERIFICATION_TTL_SECONDS: int = 60 * 60 * 24

    # Mail
    MAIL_FROM: str = "no-reply@localhost"
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True

    # Links & avatars
    APP_BASE_URL: str = "http://localhost:4200"
    AVATAR_PROVIDER: str = "gravatar.com"

settings = Settings()

# --- Logging Setup ---
LOG_LEVEL_NAME: str = os.getenv("LOG_LEVEL", "WARNING").upper()
if settings.DEBUG:
    LOG_LEVEL_NAME = "DEBUG"

ACTUAL_LOG_LEVEL = getattr(logging, LOG_LEVEL_NAME, logging.WARNING)

logging.basicConfig(
    level=ACTUAL_LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logging.getLogger('uvicorn').setLevel(logging.WARNING)
logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
logging.getLogger('fastapi').setLevel(logging.INFO if settings.DEBUG else logging.WARNING)
logging.getLogger('motor').setLevel(logging.WARNING)
logging.getLogger('pymongo').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# --- Validate critical settings after loading ---
if not settings.MONGODB_URL:
    logger.critical("CRITICAL: MONGODB_URL environment variable is not set and no default provided.")

if settings.JWT_SECRET_KEY == "change-me":
    logger.warning("JWT_SECRET_KEY is using the built-in default. Set it before deploying.")

if not settings.SMTP_HOST:
    logger.warning("SMTP_HOST environment variable is not set. Verification and reset emails will fail.")

if settings.ADMIN_ROLE_NAME not in settings.ROLE_SUBROLES:
    logger.warning(f"ROLE_SUBROLES has no entry for the admin role '{settings.ADMIN_ROLE_NAME}'.")

if settings.DEBUG:
    logger.debug(f"PROJECT_NAME: {settings.PROJECT_NAME}")
    logger.debug(f"API_V1_PREFIX: {settings.API_V1_PREFIX}")
    logger.debug(f"DB_NAME: {settings.DB_NAME}")
    logger.debug(f"ALLOW_REGISTRATION: {settings.ALLOW_REGISTRATION}")
    logger.debug(f"REQUIRE_EMAIL_VERIFICATION: {settings.REQUIRE_EMAIL_VERIFICATION}")
    logger.debug(f"ROLE_SUBROLES: {settings.ROLE_SUBROLES}")
    logger.debug(f"MONGODB_URL Set: {'Yes' if settings.MONGODB_URL else 'No - CRITICAL'}")
    logger.debug(f"SMTP_HOST Set: {'Yes' if settings.SMTP_HOST else 'No - WARNING'}")

# Module-level aliases for modules that import constants directly
PROJECT_NAME = settings.PROJECT_NAME
DEBUG = settings.DEBUG
VERSION = settings.VERSION
API_V1_PREFIX = settings.API_V1_PREFIX
MONGODB_URL = settings.MONGODB_URL
DB_NAME = settings.DB_NAME
MONGODB_TLS = settings.MONGODB_TLS
ADMIN_ROLE_NAME = settings.ADMIN_ROLE_NAME
DEFAULT_ROLE_NAME = settings.DEFAULT_ROLE_NAME
