import asyncio
import calendar
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional

import feedparser

from kubefeeds.db import Database
from kubefeeds.exceptions import FeedFetchError
from kubefeeds.http_client import HTTPClient
from kubefeeds.models import Article, InsertResult, Source
from kubefeeds.relevance import is_relevant
from kubefeeds.summarizer import generate_abstract

logger = logging.getLogger(__name__)

UNKNOWN_AUTHOR = "Unknown"


def entry_content(entry: Dict[str, Any]) -> str:
    """Structured content first, then summary/description."""
    for block in entry.get("content") or []:
        value = block.get("value") if isinstance(block, dict) else None
        if value:
            return value
    return entry.get("summary") or entry.get("description") or ""


def entry_author(entry: Dict[str, Any]) -> str:
    if entry.get("author"):
        return entry["author"]
    for author in entry.get("authors") or []:
        if isinstance(author, dict) and author.get("name"):
            return author["name"]
    return UNKNOWN_AUTHOR


def entry_published(entry: Dict[str, Any]) -> Optional[datetime]:
    # feedparser normalizes *_parsed fields to UTC
    for key in ("published_parsed", "updated_parsed", "created_parsed"):
        parsed = entry.get(key)
        if parsed:
            return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
    for key in ("published", "updated"):
        raw = entry.get(key)
        if raw:
            try:
                published = parsedate_to_datetime(raw)
            except (TypeError, ValueError):
                logger.warning(f"Could not parse date: {raw}")
                continue
            if published.tzinfo is None:
                published = published.replace(tzinfo=timezone.utc)
            return published
    return None


class FeedIngestor:
    """Fetches one feed, keeps Kubernetes-related items and stores the new ones."""

    def __init__(self, http_client: HTTPClient, db: Database, max_content_length: int = 5000):
        self.http_client = http_client
        self.db = db
        self.max_content_length = max_content_length

    async def fetch_entries(self, url: str) -> List[Dict[str, Any]]:
        try:
            text = await self.http_client.fetch(url)
        except Exception as e:
            raise FeedFetchError(f"Failed to fetch feed: {url} ({e})") from e

        # Parsing and storage run off the event loop so API reads are never blocked
        feed = await asyncio.to_thread(feedparser.parse, text)
        entries = feed.get("entries")
        # bozo alone is not fatal: feedparser flags recoverable encoding issues too
        if not entries and (feed.get("bozo") or not feed.get("version")):
            reason = feed.get("bozo_exception") or "not recognized as RSS or Atom"
            raise FeedFetchError(f"Invalid RSS/Atom feed: {url} ({reason})")
        return entries or []

    def build_article(self, entry: Dict[str, Any], source_name: str) -> Optional[Article]:
        """Returns None for items that are off-topic or have no link."""
        title = entry.get("title") or ""
        content = entry_content(entry)
        if not is_relevant(title, content):
            return None

        link = entry.get("link") or entry.get("feedburner_origlink")
        if not link:
            logger.debug(f"Skipping item without link: {title}")
            return None

        return Article(
            title=title,
            link=link,
            source=source_name,
            abstract=generate_abstract(content, title),
            content=content[:self.max_content_length],
            author=entry_author(entry),
            published=entry_published(entry),
        )

    async def ingest(self, source: Source) -> int:
        """
        Run fetch -> filter -> summarize -> store for one source.
        Returns the number of new articles. Never raises.
        """
        logger.info(f"Fetching feed: {source.name}")
        try:
            entries = await self.fetch_entries(source.url)
        except FeedFetchError as e:
            logger.error(f"Error fetching feed {source.name}: {e}")
            return 0

        new_articles = 0
        for entry in entries:
            try:
                article = self.build_article(entry, source.name)
            except Exception as e:
                logger.error(f"Error parsing entry from {source.name}: {e}")
                continue
            if article is None:
                continue
            if await asyncio.to_thread(self.db.insert_article, article) is InsertResult.INSERTED:
                new_articles += 1

        try:
            await asyncio.to_thread(self.db.mark_fetched, source.url)
        except Exception as e:
            logger.error(f"Could not update last_fetched for {source.name}: {e}")

        if new_articles > 0:
            logger.info(f"Added {new_articles} new articles from {source.name}")
        return new_articles
