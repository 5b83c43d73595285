import logging
from datetime import timedelta

import uvicorn
from dotenv import load_dotenv

from kubefeeds.api import create_app
from kubefeeds.config import Settings
from kubefeeds.db import Database
from kubefeeds.http_client import HTTPClient
from kubefeeds.ingest import FeedIngestor
from kubefeeds.scheduler import IngestionScheduler
from kubefeeds.sources import DEFAULT_SOURCES


# Load env
load_dotenv()

logger = logging.getLogger(__name__)

def build_app(settings: Settings):
    db = Database(settings.db_path)
    if settings.seed_default_feeds:
        db.seed_sources(DEFAULT_SOURCES)

    http = HTTPClient(timeout=settings.fetch_timeout)
    ingestor = FeedIngestor(http, db, max_content_length=settings.max_content_length)
    scheduler = IngestionScheduler(
        db,
        ingestor,
        warmup=settings.warmup_seconds,
        interval=timedelta(hours=settings.fetch_interval_hours),
        pacing=settings.pacing_seconds,
    )
    return create_app(db, scheduler, http_client=http)

def main():
    settings = Settings.from_env()

    # Setup logging
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    logger.info("Starting KubeFeeds...")

    app = build_app(settings)
    logger.info(f"KubeFeeds server running on port {settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)

if __name__ == "__main__":
    main()
