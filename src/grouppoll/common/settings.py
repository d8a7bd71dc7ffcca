import os
import pathlib
from dotenv import load_dotenv

load_dotenv()


def boolean_env(key: str, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes")


def secret_env(key: str, default: str = "") -> str:
    """Read a secret from `KEY_FILE` if set, otherwise from `KEY`."""
    if secret_file := os.getenv(f"{key}_FILE"):
        return pathlib.Path(secret_file).read_text().strip()
    return os.getenv(key, default)


# Database settings
DB_USER = os.getenv("DB_USER", "grouppoll")
if password_file := os.getenv("POSTGRES_PASSWORD_FILE"):
    DB_PASSWORD = pathlib.Path(password_file).read_text().strip()
else:
    DB_PASSWORD = os.getenv("DB_PASSWORD", "grouppoll")

DB_HOST = os.getenv("DB_HOST", "postgres")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "grouppoll")


def make_db_url(
    user=DB_USER, password=DB_PASSWORD, host=DB_HOST, port=DB_PORT, db=DB_NAME
):
    return f"postgresql://{user}:{password}@{host}:{port}/{db}"


DB_URL = os.getenv("DATABASE_URL", make_db_url())


# Broker settings
CELERY_QUEUE_PREFIX = os.getenv("CELERY_QUEUE_PREFIX", "grouppoll")
CELERY_BROKER_TYPE = os.getenv("CELERY_BROKER_TYPE", "amqp").lower()  # amqp or redis
CELERY_BROKER_USER = os.getenv("CELERY_BROKER_USER", "grouppoll")
CELERY_BROKER_PASSWORD = os.getenv("CELERY_BROKER_PASSWORD", "grouppoll")

CELERY_BROKER_HOST = os.getenv("CELERY_BROKER_HOST", "")
if not CELERY_BROKER_HOST and CELERY_BROKER_TYPE == "amqp":
    RABBITMQ_HOST = os.getenv("RABBITMQ_HOST", "rabbitmq")
    RABBITMQ_PORT = os.getenv("RABBITMQ_PORT", "5672")
    CELERY_BROKER_HOST = f"{RABBITMQ_HOST}:{RABBITMQ_PORT}//"

REDIS_DB = os.getenv("REDIS_DB", "0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", f"db+{DB_URL}")


# API settings
SERVER_URL = os.getenv("SERVER_URL", "http://localhost:8000").rstrip("/")


# Poll settings
MIN_POLL_DURATION = 15
MAX_POLL_DURATION = 480
DEFAULT_POLL_DURATION = 60
MAX_TITLE_LENGTH = 200
SHARE_SLUG_LENGTH = int(os.getenv("SHARE_SLUG_LENGTH", 10))
ACCESS_TOKEN_BYTES = int(os.getenv("ACCESS_TOKEN_BYTES", 24))


# Notification settings
NOTIFICATIONS_ENABLED = boolean_env("NOTIFICATIONS_ENABLED", True)

SMTP_SERVER = os.getenv("SMTP_SERVER", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = secret_env("SMTP_PASSWORD")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "polls@localhost")

SLACK_BOT_TOKEN = secret_env("SLACK_BOT_TOKEN")


# Calendar sync settings
CALENDAR_SYNC_URL = os.getenv("CALENDAR_SYNC_URL", "")
CALENDAR_SYNC_TOKEN = secret_env("CALENDAR_SYNC_TOKEN")
CALENDAR_SYNC_ATTEMPTS = int(os.getenv("CALENDAR_SYNC_ATTEMPTS", 2))
CALENDAR_SYNC_BACKOFF_SECONDS = float(os.getenv("CALENDAR_SYNC_BACKOFF_SECONDS", 1.0))
CALENDAR_SYNC_TIMEOUT = float(os.getenv("CALENDAR_SYNC_TIMEOUT", 30.0))
