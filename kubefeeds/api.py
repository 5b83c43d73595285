import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Optional

from fastapi import Body, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from kubefeeds.db import Database
from kubefeeds.exceptions import DuplicateSourceError
from kubefeeds.http_client import HTTPClient
from kubefeeds.scheduler import IngestionScheduler

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 1000
# Keeps (page - 1) * limit well inside SQLite's 64-bit integer range
MAX_PAGE = 10**9
MAX_ROW_ID = 2**63 - 1


def _positive_int(value: Optional[str], default: int, maximum: int) -> int:
    """
    Lenient query-string parsing: anything unusable falls back to the default,
    oversized values are capped at the maximum.
    """
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    if parsed <= 0:
        return default
    return min(parsed, maximum)


def _row_id(value: str) -> Optional[int]:
    if not value.isdecimal() or len(value) > 19:
        return None
    row_id = int(value)
    return row_id if 0 < row_id <= MAX_ROW_ID else None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    db: Database,
    scheduler: IngestionScheduler,
    http_client: Optional[HTTPClient] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler.start()
        yield
        await scheduler.stop()
        if http_client is not None:
            await http_client.close()

    app = FastAPI(title="KubeFeeds", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SQLAlchemyError)
    async def storage_error(request: Request, exc: SQLAlchemyError):
        logger.error(f"Storage error on {request.url.path}: {exc}")
        return _error(500, str(exc))

    # Storage calls are blocking, so the read routes are plain functions that
    # FastAPI runs in its threadpool

    @app.get("/api/articles")
    def list_articles(page: Optional[str] = None, limit: Optional[str] = None, search: str = ""):
        result = db.list_articles(
            page=_positive_int(page, DEFAULT_PAGE, MAX_PAGE),
            limit=_positive_int(limit, DEFAULT_LIMIT, MAX_LIMIT),
            search=search,
        )
        return {
            "articles": result.articles,
            "totalCount": result.total_count,
            "currentPage": result.page,
            "totalPages": result.total_pages,
        }

    @app.get("/api/articles/{article_id}")
    def get_article(article_id: str):
        row_id = _row_id(article_id)
        article = db.get_article(row_id) if row_id is not None else None
        if article is None:
            return _error(404, "Article not found")
        return article

    @app.get("/api/feeds")
    def list_feeds():
        return [asdict(source) for source in db.list_sources()]

    # Routes that queue jobs stay on the event loop, which owns the scheduler queue

    @app.post("/api/feeds")
    async def add_feed(payload: Any = Body(default=None)):
        if not isinstance(payload, dict):
            payload = {}
        name = payload.get("name")
        url = payload.get("url")
        if not isinstance(name, str) or not isinstance(url, str) or not name or not url:
            return _error(400, "Name and URL are required")
        try:
            source = await asyncio.to_thread(db.add_source, name, url)
        except DuplicateSourceError as e:
            return _error(409, str(e))

        # Fetch the new feed without waiting for the next cycle
        scheduler.request_source_fetch(source)
        return {"id": source.id, "name": source.name, "url": source.url}

    @app.post("/api/refresh")
    async def refresh():
        if scheduler.request_refresh():
            logger.info(f"Manual refresh queued ({scheduler.pending_jobs} job(s) pending)")
        return {"message": "Feed refresh started"}

    @app.get("/api/stats")
    def stats():
        return db.stats()

    return app
