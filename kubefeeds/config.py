import os
from dataclasses import dataclass
from typing import Mapping, Optional


def _flag(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


@dataclass
class Settings:
    db_path: str = "kubefeeds.db"
    host: str = "0.0.0.0"
    port: int = 3000
    warmup_seconds: float = 5.0
    fetch_interval_hours: float = 4.0
    pacing_seconds: float = 2.0
    fetch_timeout: float = 15.0
    max_content_length: int = 5000
    seed_default_feeds: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables (call load_dotenv() first).
        Malformed numbers raise ValueError so a bad deploy fails at startup.
        """
        env = os.environ if env is None else env
        return cls(
            db_path=env.get("KUBEFEEDS_DB_PATH", "kubefeeds.db"),
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT", "3000")),
            warmup_seconds=float(env.get("FETCH_WARMUP_SECONDS", "5")),
            fetch_interval_hours=float(env.get("FETCH_INTERVAL_HOURS", "4")),
            pacing_seconds=float(env.get("FETCH_PACING_SECONDS", "2")),
            fetch_timeout=float(env.get("FETCH_TIMEOUT_SECONDS", "15")),
            max_content_length=int(env.get("MAX_CONTENT_LENGTH", "5000")),
            seed_default_feeds=_flag(env.get("SEED_DEFAULT_FEEDS", "true")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
