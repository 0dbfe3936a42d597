from __future__ import annotations

import re
import time
from urllib.parse import urlsplit, urlunsplit


_UTM_PREFIXES = ("utm_",)


def now_ts() -> int:
    return int(time.time())


def _is_tracking_param(segment: str) -> bool:
    return segment.split("=", 1)[0].lower().startswith(_UTM_PREFIXES)


def canonicalize_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        return ""
    parts = urlsplit(url)
    query = parts.query
    if query:
        # only tracking segments go; the rest keeps its original encoding
        segments = query.split("&")
        kept = [s for s in segments if not _is_tracking_param(s)]
        if len(kept) != len(segments):
            query = "&".join(kept)
    return urlunsplit(parts._replace(query=query, fragment=""))


def one_line(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()
