from datetime import datetime, timezone
from xml.sax.saxutils import escape

import httpx
import pytest

from kubefeeds.db import Database
from kubefeeds.http_client import HTTPClient
from kubefeeds.models import Article


def rss_item(title, link=None, description="", pub_date=None, creator=None, encoded=None):
    parts = [f"<title>{escape(title)}</title>"]
    if link:
        parts.append(f"<link>{escape(link)}</link>")
    if description:
        parts.append(f"<description>{escape(description)}</description>")
    if encoded:
        parts.append(f"<content:encoded><![CDATA[{encoded}]]></content:encoded>")
    if pub_date:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    if creator:
        parts.append(f"<dc:creator>{escape(creator)}</dc:creator>")
    return "<item>" + "".join(parts) + "</item>"


def rss_feed(*items):
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<rss version="2.0" xmlns:dc="http://purl.org/dc/elements/1.1/"'
        ' xmlns:content="http://purl.org/rss/1.0/modules/content/">'
        "<channel><title>Test Feed</title><link>https://example.com/</link>"
        "<description>test</description>"
        + "".join(items)
        + "</channel></rss>"
    )


def make_article(link, title="Kubernetes news", published=None, source="Kubernetes Blog", **kwargs):
    return Article(
        title=title,
        link=link,
        source=source,
        abstract=kwargs.pop("abstract", ""),
        content=kwargs.pop("content", ""),
        published=published,
        **kwargs,
    )


class FakeWeb:
    """Routes URLs to canned responses and records every request."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)
        status, body = self.routes.get(url, (404, "not found"))
        return httpx.Response(status, text=body, headers={"Content-Type": "application/rss+xml"})

    def client(self):
        return HTTPClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture()
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture()
def web():
    return FakeWeb()


@pytest.fixture()
def now():
    return datetime.now(timezone.utc).replace(microsecond=0)
