"""Kognys client settings with environment variable support."""

import os
from pathlib import Path

# Load .env file from project root
from dotenv import load_dotenv

# Find .env file - check current dir and parent dirs
def _find_env_file() -> Path | None:
    """Find .env file in current or parent directories."""
    current = Path.cwd()
    for _ in range(5):  # Check up to 5 levels
        env_file = current / ".env"
        if env_file.exists():
            return env_file
        current = current.parent
    return None

env_file = _find_env_file()
if env_file:
    load_dotenv(env_file)

from pydantic import BaseModel


class APISettings(BaseModel):
    """Backend connection settings."""

    base_url: str = os.getenv(
        "KOGNYS__BASE_URL",
        "https://kognys-agents-python-production.up.railway.app",
    )
    timeout: float = float(os.getenv("KOGNYS__TIMEOUT", "300"))
    user_id: str | None = os.getenv("KOGNYS__USER_ID")


class StreamSettings(BaseModel):
    """Stream interpretation and retry settings (seconds / characters)."""

    max_retries: int = int(os.getenv("STREAM__MAX_RETRIES", "3"))
    retry_delay: float = float(os.getenv("STREAM__RETRY_DELAY", "1.0"))
    message_debounce: float = float(os.getenv("STREAM__MESSAGE_DEBOUNCE", "1.0"))
    criticism_debounce: float = float(os.getenv("STREAM__CRITICISM_DEBOUNCE", "0.5"))
    courtesy_threshold: int = int(os.getenv("STREAM__COURTESY_THRESHOLD", "20"))


class Settings(BaseModel):
    """Application settings."""

    api: APISettings = APISettings()
    stream: StreamSettings = StreamSettings()
    data_dir: Path = Path(os.getenv("KOGNYS__DATA_DIR", str(Path.home() / ".kognys")))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
