# gibber/config.py
import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file

class Settings(BaseModel):
    # General app settings
    APP_NAME: str = "Gibber"
    env: str = os.getenv("ENV", "dev")

    # Host & Port settings for the TCP listener
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "7000"))

    # Database (Tortoise connection URL)
    database_url: str = os.getenv("DATABASE_URL", "sqlite://gibber.sqlite3")
    # Create tables on startup (disable when the schema is managed elsewhere)
    generate_schemas: bool = os.getenv("GENERATE_SCHEMAS", "true").lower() in ("true", "1", "yes")

    # Session behaviour
    poll_interval_ms: int = int(os.getenv("POLL_INTERVAL_MS", "500"))  # chat poller tick
    password_min_length: int = int(os.getenv("PASSWORD_MIN_LENGTH", "6"))
    max_attempts: int = int(os.getenv("MAX_ATTEMPTS", "3"))  # email / password retries

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str = os.getenv("LOG_FILE", "generated/debug.log")  # empty string = console only

    @property
    def poll_interval(self) -> float:
        """Poll interval in seconds."""
        return self.poll_interval_ms / 1000

settings = Settings()  # Instantiate configuration
