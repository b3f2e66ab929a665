"""Configuration for the knowledge-base bot."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

load_dotenv()

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent
LOGS_DIR = Path(os.getenv("LOGS_DIR", str(BASE_DIR / "logs")))
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
BETTERSTACK_SOURCE_TOKEN = os.getenv("BETTERSTACK_SOURCE_TOKEN")
BETTERSTACK_INGEST_HOST = os.getenv("BETTERSTACK_INGEST_HOST")

# Pipeline constants
CONSUMER_BATCH_SIZE = 1
VISIBILITY_TIMEOUT_SECONDS = 10 * 60
CONSUMER_TIMEOUT_SECONDS = 5 * 60
DEDUP_WINDOW_SECONDS = 5 * 60
SYNC_RETRY_ATTEMPTS = 0
SYNC_SCHEDULE = {"minute": "0", "hour": "0", "day_of_week": "mon-fri"}  # UTC


@dataclass(frozen=True)
class Config:
    """Process-wide configuration, built once and handed to each handler."""

    slack_signing_secret: Optional[str] = None
    bot_oauth_token: Optional[str] = None
    chat_model_id: Optional[str] = None
    knowledge_base_id: Optional[str] = None
    aws_region: Optional[str] = None

    spool_dir: Path = BASE_DIR / "spool"
    checkpoint_dir: Path = BASE_DIR / "checkpoints"

    host: str = "0.0.0.0"
    port: int = 8000

    worker_concurrency: int = 4
    poll_interval: float = 1.0
    visibility_timeout: float = VISIBILITY_TIMEOUT_SECONDS
    consumer_timeout: float = CONSUMER_TIMEOUT_SECONDS
    dedup_window: float = DEDUP_WINDOW_SECONDS
    max_receive_count: int = 0  # 0 = redeliver forever
    sync_schedule: Dict[str, str] = field(default_factory=lambda: dict(SYNC_SCHEDULE))

    @classmethod
    def from_env(cls) -> "Config":
        """Read the configuration from the environment (and .env)."""
        return cls(
            slack_signing_secret=os.getenv("SLACK_SIGNING_SECRET"),
            bot_oauth_token=os.getenv("BOT_OAUTH_TOKEN"),
            chat_model_id=os.getenv("CHAT_MODEL_ID"),
            knowledge_base_id=os.getenv("KNOWLEDGE_BASE_ID"),
            aws_region=os.getenv("AWS_REGION"),
            spool_dir=Path(os.getenv("SPOOL_DIR", str(BASE_DIR / "spool"))),
            checkpoint_dir=Path(os.getenv("CHECKPOINT_DIR", str(BASE_DIR / "checkpoints"))),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            worker_concurrency=int(os.getenv("WORKER_CONCURRENCY", "4")),
            poll_interval=float(os.getenv("POLL_INTERVAL", "1")),
            max_receive_count=int(os.getenv("MAX_RECEIVE_COUNT", "0")),
        )

    def validate(self) -> None:
        """Validate required configuration."""
        errors = []

        for name in ("slack_signing_secret", "bot_oauth_token", "chat_model_id", "knowledge_base_id"):
            if not getattr(self, name):
                errors.append(f"{name.upper()} is required")

        if self.port <= 0:
            errors.append(f"PORT must be positive: {self.port}")
        if self.worker_concurrency < 1:
            errors.append(f"WORKER_CONCURRENCY must be at least 1: {self.worker_concurrency}")
        if self.poll_interval <= 0:
            errors.append(f"POLL_INTERVAL must be positive: {self.poll_interval}")
        if self.max_receive_count < 0:
            errors.append(f"MAX_RECEIVE_COUNT must not be negative: {self.max_receive_count}")
        if self.consumer_timeout >= self.visibility_timeout:
            errors.append("consumer timeout must be shorter than the visibility timeout")

        try:
            self.spool_dir.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            errors.append(f"Cannot create SPOOL_DIR: {e}")

        if errors:
            raise ValueError("Config errors:\n  " + "\n  ".join(errors))
