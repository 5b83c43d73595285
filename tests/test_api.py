import asyncio
import logging
import time
from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from conftest import FakeWeb, make_article, rss_feed
from kubefeeds.api import MAX_LIMIT, MAX_PAGE, _positive_int, create_app
from kubefeeds.ingest import FeedIngestor
from kubefeeds.scheduler import IngestionScheduler


@pytest.fixture()
def web():
    return FakeWeb({"https://new.example.com/rss": (200, rss_feed())})


@pytest.fixture()
def scheduler(db, web):
    async def no_sleep(_):
        return None

    return IngestionScheduler(db, FeedIngestor(web.client(), db), sleep=no_sleep)


@pytest.fixture()
def client(db, scheduler):
    # Not used as a context manager, so the lifespan (timers) never starts
    return TestClient(create_app(db, scheduler))


def test_list_articles_defaults(client, db, now):
    for i in range(25):
        db.insert_article(make_article(f"https://example.com/{i}", published=now - timedelta(minutes=i)))

    resp = client.get("/api/articles")
    assert resp.status_code == 200
    data = resp.json()
    assert data["totalCount"] == 25
    assert data["currentPage"] == 1
    assert data["totalPages"] == 2
    assert len(data["articles"]) == 20
    assert data["articles"][0]["link"] == "https://example.com/0"


def test_list_articles_paging_and_search(client, db):
    db.insert_article(make_article("https://example.com/helm", title="Helm 3 release notes"))
    db.insert_article(make_article("https://example.com/sail", title="Sailing tips"))

    data = client.get("/api/articles", params={"search": "HELM", "page": 1, "limit": 5}).json()
    assert [a["title"] for a in data["articles"]] == ["Helm 3 release notes"]
    assert data["totalPages"] == 1

    data = client.get("/api/articles", params={"page": 2, "limit": 1}).json()
    assert len(data["articles"]) == 1
    assert data["currentPage"] == 2


def test_bad_paging_values_fall_back_to_defaults(client):
    data = client.get("/api/articles", params={"page": "abc", "limit": "-3"}).json()
    assert data["currentPage"] == 1
    assert data["totalPages"] == 0
    assert data["articles"] == []


def test_get_article(client, db):
    db.insert_article(make_article("https://example.com/a", title="Pod security"))
    article_id = db.list_articles().articles[0]["id"]

    resp = client.get(f"/api/articles/{article_id}")
    assert resp.status_code == 200
    assert resp.json()["title"] == "Pod security"


def test_missing_article_is_404(client):
    for path in (
        "/api/articles/999",
        "/api/articles/not-a-number",
        "/api/articles/\u00b2",
        "/api/articles/" + "9" * 30,
        "/api/articles/0",
    ):
        resp = client.get(path)
        assert resp.status_code == 404
        assert resp.json() == {"error": "Article not found"}


def test_list_feeds_ordered_by_name(client, db):
    db.add_source("Zeta Blog", "https://zeta.example.com/feed")
    db.add_source("Alpha Blog", "https://alpha.example.com/feed")

    feeds = client.get("/api/feeds").json()
    assert [f["name"] for f in feeds] == ["Alpha Blog", "Zeta Blog"]
    assert {"id", "name", "url", "active", "last_fetched", "created_at"} <= set(feeds[0])


def test_add_feed_requires_name_and_url(client, scheduler):
    bodies = (
        {"name": "Only name"},
        {"url": "https://x.example.com"},
        {"name": "", "url": ""},
        {"name": 5, "url": ["https://x.example.com"]},
        None,
        [],
        "x",
        42,
    )
    for body in bodies:
        resp = client.post("/api/feeds", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Name and URL are required"}
    assert scheduler.pending_jobs == 0


def test_add_feed_schedules_immediate_fetch(client, db, scheduler, web):
    resp = client.post("/api/feeds", json={"name": "New Feed", "url": "https://new.example.com/rss"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "New Feed"
    assert body["url"] == "https://new.example.com/rss"
    assert isinstance(body["id"], int)

    assert scheduler.pending_jobs == 1
    asyncio.run(scheduler.run_pending())
    assert web.requests == ["https://new.example.com/rss"]
    assert db.get_source("https://new.example.com/rss").last_fetched is not None


def test_add_duplicate_feed_is_conflict(client):
    payload = {"name": "New Feed", "url": "https://new.example.com/rss"}
    client.post("/api/feeds", json=payload)

    resp = client.post("/api/feeds", json=payload)
    assert resp.status_code == 409
    assert "error" in resp.json()


def test_refresh_returns_immediately(client, scheduler, caplog):
    caplog.set_level(logging.INFO, logger="kubefeeds.api")
    resp = client.post("/api/refresh")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Feed refresh started"}
    assert scheduler.pending_jobs == 1
    assert "1 job(s) pending" in caplog.text


def test_stats(client, db, now):
    db.insert_article(make_article("https://example.com/1", published=now, source="CNCF Blog"))
    db.insert_article(make_article("https://example.com/2", published=now - timedelta(days=2), source="Docker Blog"))

    assert client.get("/api/stats").json() == {
        "total_articles": 2,
        "total_sources": 2,
        "latest_article": now.isoformat(),
        "today_articles": 1,
    }


def test_storage_failure_is_500(client, db, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "stats", broken)
    resp = client.get("/api/stats")
    assert resp.status_code == 500
    assert "database is locked" in resp.json()["error"]


def test_oversized_paging_values_are_capped(client, db):
    db.insert_article(make_article("https://example.com/1"))

    resp = client.get("/api/articles", params={"page": str(10**18), "limit": str(10**9)})
    assert resp.status_code == 200
    data = resp.json()
    assert data["articles"] == []
    assert data["currentPage"] == MAX_PAGE
    assert data["totalCount"] == 1
    assert data["totalPages"] == 1


def test_positive_int_bounds():
    assert _positive_int(None, 20, MAX_LIMIT) == 20
    assert _positive_int("0", 20, MAX_LIMIT) == 20
    assert _positive_int("50", 20, MAX_LIMIT) == 50
    assert _positive_int(str(10**12), 20, MAX_LIMIT) == MAX_LIMIT
    assert _positive_int("9" * 5000, 20, MAX_LIMIT) == 20


def test_slow_reads_are_served_concurrently(db, scheduler, monkeypatch):
    def slow_stats():
        time.sleep(0.5)
        return {"total_articles": 0}

    monkeypatch.setattr(db, "stats", slow_stats)
    app = create_app(db, scheduler)

    async def two_requests():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            started = time.perf_counter()
            responses = await asyncio.gather(http.get("/api/stats"), http.get("/api/stats"))
            return time.perf_counter() - started, responses

    elapsed, responses = asyncio.run(two_requests())
    assert [r.status_code for r in responses] == [200, 200]
    # Run one after the other these would take a full second
    assert elapsed < 0.9
