from __future__ import annotations

import asyncio
import calendar
import logging
import ssl
import time
from urllib.parse import urlparse

import feedparser
import httpx

from linkfeed.rss.errors import (
    FetchError,
    ERROR_HTTP,
    ERROR_INVALID_URL,
    ERROR_NETWORK,
    ERROR_PARSE_FAIL,
    ERROR_TIMEOUT,
    ERROR_TLS,
)
from linkfeed.storage.types import FeedDocument, FeedEntry
from linkfeed.utils import now_ts


logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = "linkfeed/0.1 (+feed aggregator)"

# openssl error text fragments
_TLS_MARKERS = ("certificate verify failed", "[ssl:")


def _redact_detail(detail: str) -> str:
    detail = detail.strip()
    if len(detail) > 240:
        detail = detail[:240] + "…"
    return detail


def validate_feed_url(url: str | None) -> str:
    url = (url or "").strip()
    if not url:
        raise FetchError(ERROR_INVALID_URL, "empty url")
    parsed = urlparse(url)
    if parsed.scheme.lower() not in {"http", "https"}:
        raise FetchError(ERROR_INVALID_URL, f"unsupported scheme: {url}")
    if not parsed.netloc or not parsed.hostname:
        raise FetchError(ERROR_INVALID_URL, f"missing host: {url}")
    return url


def _to_ts(entry: dict) -> int:
    ts = entry.get("published_parsed") or entry.get("updated_parsed") or entry.get("created_parsed")
    if not ts:
        return now_ts()
    try:
        value = calendar.timegm(ts)
    except (TypeError, ValueError, OverflowError):
        return now_ts()
    return value if value > 0 else now_ts()


def _entry_description(entry: dict) -> str:
    summary = entry.get("summary") or entry.get("description")
    if summary:
        return str(summary)
    content = entry.get("content") or []
    if content and isinstance(content[0], dict):
        return str(content[0].get("value") or "")
    return ""


def _is_tls_error(exc: BaseException) -> bool:
    seen: BaseException | None = exc
    depth = 0
    while seen is not None and depth < 8:
        if isinstance(seen, ssl.SSLError):
            return True
        seen = seen.__cause__ or seen.__context__
        depth += 1
    text = str(exc).lower()
    return any(marker in text for marker in _TLS_MARKERS)


def parse_feed(url: str, body: bytes | str, content_type: str = "") -> FeedDocument:
    try:
        parsed = feedparser.parse(body, response_headers={"content-type": content_type} if content_type else None)
    except Exception as e:
        raise FetchError(ERROR_PARSE_FAIL, _redact_detail(str(e))) from e

    if getattr(parsed, "bozo", 0):
        exc = getattr(parsed, "bozo_exception", None)
        if not parsed.entries:
            raise FetchError(ERROR_PARSE_FAIL, _redact_detail(str(exc) if exc else "invalid feed"))
        logger.warning("feed parse bozo url=%s error=%s", url, exc)

    if not parsed.entries and not parsed.get("version"):
        raise FetchError(ERROR_PARSE_FAIL, "not an rss/atom document")

    entries: list[FeedEntry] = []
    for entry in parsed.entries:
        entries.append(
            FeedEntry(
                title=str(entry.get("title") or ""),
                link=str(entry.get("link") or ""),
                description=_entry_description(entry),
                published_at=_to_ts(entry),
            )
        )

    # newest first; sorted() is stable so undated entries keep feed order
    entries = sorted(entries, key=lambda e: e.published_at, reverse=True)
    title = str(parsed.feed.get("title") or "")
    return FeedDocument(url=url, title=title, entries=tuple(entries))


class FeedFetcher:
    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._user_agent = user_agent
        self._transport = transport

    def _client(self, timeout_seconds: float, verify_tls: bool) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(timeout_seconds),
            verify=verify_tls,
            transport=self._transport,
            headers={
                "User-Agent": self._user_agent,
                "Accept": "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.8, */*;q=0.5",
            },
        )

    async def fetch(self, url: str, timeout_seconds: float, verify_tls: bool = True) -> FeedDocument:
        url = validate_feed_url(url)
        if timeout_seconds <= 0:
            raise ValueError(f"timeout must be positive: {timeout_seconds}")
        if not verify_tls:
            logger.warning("tls certificate verification disabled for %s", url)

        started = time.perf_counter()
        try:
            async with self._client(timeout_seconds, verify_tls) as client:
                # httpx timeouts are per phase; wait_for bounds the whole request
                resp = await asyncio.wait_for(client.get(url), timeout=timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise FetchError(ERROR_TIMEOUT, f"no response within {timeout_seconds}s") from e
        except httpx.TransportError as e:
            if _is_tls_error(e):
                raise FetchError(ERROR_TLS, _redact_detail(str(e))) from e
            raise FetchError(ERROR_NETWORK, _redact_detail(str(e)) or type(e).__name__) from e

        if resp.status_code >= 400:
            raise FetchError(ERROR_HTTP, f"{resp.status_code} {resp.reason_phrase}", http_status=resp.status_code)

        doc = parse_feed(url, resp.content, resp.headers.get("content-type", ""))
        logger.debug(
            "fetched %s entries from %s in %.2fs",
            doc.item_count,
            url,
            time.perf_counter() - started,
        )
        return doc
