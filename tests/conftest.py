"""Shared fixtures: temporary item store, fake fetcher, sample feeds."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from linkfeed.storage.db import Storage
from linkfeed.storage.types import FeedDocument, FeedEntry, FeedSource, NewItem


NOW = 1_760_000_000


RSS_SAMPLE = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example Blog</title>
    <link>https://blog.example.com/</link>
    <description>Sample</description>
    <item>
      <title>Older post</title>
      <link>https://blog.example.com/older</link>
      <description>&lt;p&gt;older body&lt;/p&gt;</description>
      <pubDate>Mon, 06 Sep 2021 16:45:00 +0000</pubDate>
    </item>
    <item>
      <title>Newer post</title>
      <link>https://blog.example.com/newer?utm_source=rss#top</link>
      <description>&lt;p&gt;newer body&lt;/p&gt;</description>
      <pubDate>Tue, 07 Sep 2021 08:00:00 +0000</pubDate>
    </item>
    <item>
      <title>Third post</title>
      <link>https://blog.example.com/third</link>
      <description>third</description>
      <pubDate>Sun, 05 Sep 2021 08:00:00 +0000</pubDate>
    </item>
  </channel>
</rss>
"""

ATOM_SAMPLE = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Site</title>
  <id>urn:uuid:60a76c80-d399-11d9-b93C-0003939e0af6</id>
  <updated>2021-09-07T10:00:00Z</updated>
  <entry>
    <title>Atom entry</title>
    <link href="https://atom.example.org/entry-1"/>
    <id>urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6a</id>
    <updated>2021-09-07T10:00:00Z</updated>
    <summary>Atom summary</summary>
  </entry>
</feed>
"""


def make_item(**overrides) -> NewItem:
    values = dict(
        category="friends",
        title="A post",
        link="https://blog.example.com/a-post",
        description="<p>body</p>",
        publish_date=NOW,
        source_name="Example Blog",
        source_url="https://blog.example.com/",
        logo_url="",
    )
    values.update(overrides)
    return NewItem(**values)


def make_entry(n: int, published_at: int = NOW, **overrides) -> FeedEntry:
    values = dict(
        title=f"Post {n}",
        link=f"https://blog.example.com/posts/{n}",
        description=f"<p>body {n}</p>",
        published_at=published_at,
    )
    values.update(overrides)
    return FeedEntry(**values)


def make_doc(url: str, entries: list[FeedEntry]) -> FeedDocument:
    return FeedDocument(url=url, title="feed", entries=tuple(entries))


def make_source(name: str, feed_url: str | None, category: str | None = "friends") -> FeedSource:
    return FeedSource(
        id=name.lower(),
        name=name,
        url=f"https://{name.lower()}.example.com/",
        feed_url=feed_url,
        category=category,
        logo_url=None,
    )


class FakeFetcher:
    """Stands in for FeedFetcher; outcomes are keyed by feed url.

    An outcome may be a FeedDocument, an exception instance, or a list of
    those consumed one per call.
    """

    def __init__(self, outcomes: dict, delay: float = 0.0) -> None:
        self.outcomes = outcomes
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    async def fetch(self, url: str, timeout_seconds: float, verify_tls: bool = True) -> FeedDocument:
        self.calls.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            outcome = self.outcomes[url]
            if isinstance(outcome, list):
                outcome = outcome.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        finally:
            self.active -= 1


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "items.db"


@pytest_asyncio.fixture
async def storage(db_path: Path) -> AsyncGenerator[Storage, None]:
    store = Storage(db_path)
    await store.connect()
    yield store
    await store.close()
