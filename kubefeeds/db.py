import logging
from datetime import timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    case,
    create_engine,
    distinct,
    func,
    or_,
    select,
    text,
    update,
)
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from kubefeeds.exceptions import DuplicateSourceError
from kubefeeds.models import Article, ArticlePage, InsertResult, Source

logger = logging.getLogger(__name__)

metadata = MetaData()

# link and url are the only uniqueness constraints; ingestion relies on both
articles = Table(
    "articles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", Text, nullable=False),
    Column("link", Text, nullable=False, unique=True),
    Column("abstract", Text),
    Column("content", Text),
    Column("published", String),  # ISO-8601 UTC
    Column("source", String),
    Column("author", String),
    Column("created_at", String, server_default=func.current_timestamp()),
    Index("ix_articles_published", "published"),
)

feeds = Table(
    "feeds",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String, nullable=False),
    Column("url", String, nullable=False, unique=True),
    Column("active", Integer, nullable=False, server_default=text("1")),
    Column("last_fetched", String),
    Column("created_at", String, server_default=func.current_timestamp()),
)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class Database:
    def __init__(self, db_path: str = "kubefeeds.db"):
        """
        Open (or create) the article store.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        # The API and the scheduler may reach the store from different threads
        if db_path == ":memory:":
            self.engine = create_engine(
                "sqlite://",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
        self.init_db()
        logger.info(f"Database ready: {db_path}")

    def init_db(self):
        metadata.create_all(self.engine)

    def close(self):
        self.engine.dispose()

    # Source registry

    def seed_sources(self, sources: Iterable[Dict[str, str]]) -> int:
        """Register sources that are not known yet. Returns how many were added."""
        added = 0
        with self.engine.begin() as conn:
            for source in sources:
                stmt = (
                    sqlite_insert(feeds)
                    .values(name=source["name"], url=source["url"])
                    .on_conflict_do_nothing(index_elements=["url"])
                )
                added += conn.execute(stmt).rowcount
        if added:
            logger.info(f"Seeded {added} feed source(s)")
        return added

    def add_source(self, name: str, url: str) -> Source:
        try:
            with self.engine.begin() as conn:
                conn.execute(feeds.insert().values(name=name, url=url))
        except IntegrityError as e:
            raise DuplicateSourceError(f"Feed already registered: {url}") from e
        logger.info(f"Registered feed source {name} ({url})")
        return self.get_source(url)

    def get_source(self, url: str) -> Optional[Source]:
        with self.engine.connect() as conn:
            row = conn.execute(select(feeds).where(feeds.c.url == url)).mappings().first()
        return Source.from_row(row) if row else None

    def active_sources(self) -> List[Source]:
        query = select(feeds).where(feeds.c.active == 1).order_by(feeds.c.id)
        with self.engine.connect() as conn:
            return [Source.from_row(r) for r in conn.execute(query).mappings()]

    def list_sources(self) -> List[Source]:
        with self.engine.connect() as conn:
            return [Source.from_row(r) for r in conn.execute(select(feeds).order_by(feeds.c.name)).mappings()]

    def mark_fetched(self, url: str):
        with self.engine.begin() as conn:
            conn.execute(update(feeds).where(feeds.c.url == url).values(last_fetched=func.current_timestamp()))

    # Articles

    def insert_article(self, article: Article) -> InsertResult:
        """
        Insert an article unless its link is already stored.
        Storage errors are logged and reported as FAILED, never raised.
        """
        published = None
        if article.published:
            published = article.published.astimezone(timezone.utc).replace(microsecond=0).isoformat()

        stmt = (
            sqlite_insert(articles)
            .values(
                title=article.title,
                link=article.link,
                abstract=article.abstract,
                content=article.content,
                published=published,
                source=article.source,
                author=article.author,
            )
            .on_conflict_do_nothing(index_elements=["link"])
        )
        try:
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(f"Error saving article {article.title}: {e}")
            return InsertResult.FAILED

        if result.rowcount > 0:
            return InsertResult.INSERTED
        logger.debug(f"Duplicate article skipped: {article.link}")
        return InsertResult.EXISTS

    def list_articles(self, page: int = 1, limit: int = 20, search: str = "") -> ArticlePage:
        count_query = select(func.count()).select_from(articles)
        page_query = (
            select(articles)
            .order_by(articles.c.published.desc(), articles.c.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        if search:
            pattern = f"%{_escape_like(search)}%"
            condition = or_(
                articles.c.title.like(pattern, escape="\\"),
                articles.c.abstract.like(pattern, escape="\\"),
                articles.c.content.like(pattern, escape="\\"),
            )
            count_query = count_query.where(condition)
            page_query = page_query.where(condition)

        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar_one()
            rows = [dict(r) for r in conn.execute(page_query).mappings()]
        return ArticlePage(articles=rows, total_count=total, page=page, limit=limit)

    def get_article(self, article_id: int) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            row = conn.execute(select(articles).where(articles.c.id == article_id)).mappings().first()
        return dict(row) if row else None

    def stats(self) -> Dict[str, Any]:
        # "today" follows SQLite's DATE('now'), which is UTC like the stored timestamps
        query = select(
            func.count().label("total_articles"),
            func.count(distinct(articles.c.source)).label("total_sources"),
            func.max(articles.c.published).label("latest_article"),
            func.count(case((func.date(articles.c.published) == func.date("now"), 1))).label("today_articles"),
        ).select_from(articles)
        with self.engine.connect() as conn:
            return dict(conn.execute(query).mappings().one())
