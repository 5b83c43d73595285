import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class Article:
    title: str
    link: str  # Unique key, used for deduplication
    source: str  # Feed name at ingestion time
    abstract: str  # Extractive summary
    content: str  # Raw item content, truncated before storage
    author: str = "Unknown"
    published: Optional[datetime] = None


@dataclass
class Source:
    name: str
    url: str
    active: bool = True
    last_fetched: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Source":
        return cls(
            id=row.get("id"),
            name=row["name"],
            url=row["url"],
            active=bool(row.get("active", 1)),
            last_fetched=row.get("last_fetched"),
            created_at=row.get("created_at"),
        )


class InsertResult(Enum):
    INSERTED = "inserted"
    EXISTS = "exists"
    FAILED = "failed"


@dataclass
class ArticlePage:
    articles: List[Dict[str, Any]]
    total_count: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.limit) if self.limit else 0
