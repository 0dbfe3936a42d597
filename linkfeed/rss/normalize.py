from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

from selectolax.parser import HTMLParser

from linkfeed.storage.types import FeedEntry
from linkfeed.utils import canonicalize_url, one_line


logger = logging.getLogger(__name__)


UNTITLED_TITLE = "Untitled"

# order matters: gbk accepts most utf-8 byte sequences
DEFAULT_ENCODINGS: tuple[str, ...] = ("utf-8", "gbk")

_DROP_TAGS = ["script", "style", "noscript", "iframe", "object", "embed", "form", "input", "button", "textarea", "select", "svg", "math", "template"]

_ALLOWED_TAGS: dict[str, set[str]] = {
    "a": {"href", "title"},
    "abbr": {"title"},
    "b": set(),
    "blockquote": set(),
    "br": set(),
    "code": set(),
    "del": set(),
    "em": set(),
    "i": set(),
    "img": {"src", "alt", "title"},
    "li": set(),
    "ol": set(),
    "p": set(),
    "pre": set(),
    "s": set(),
    "span": set(),
    "strong": set(),
    "sub": set(),
    "sup": set(),
    "u": set(),
    "ul": set(),
}

_URL_ATTRS = {"href", "src"}
_SAFE_SCHEMES = {"http", "https", "mailto"}
_STRUCTURAL = {"html", "head", "body", "-text", "-comment"}

_BODY_RE = re.compile(r"^\s*<body[^>]*>|</body>\s*$", flags=re.IGNORECASE)


def coerce_text(value: str | bytes | None, encodings: tuple[str, ...] = DEFAULT_ENCODINGS) -> str:
    if value is None:
        return ""

    if isinstance(value, str):
        try:
            value.encode("utf-8")
            return value
        except UnicodeEncodeError:
            pass
        # lone surrogates from a bytes round-trip: recover the raw bytes
        try:
            value = value.encode("utf-8", errors="surrogateescape")
        except UnicodeEncodeError:
            return ""

    for enc in encodings:
        try:
            return bytes(value).decode(enc)
        except (UnicodeDecodeError, LookupError):
            continue

    logger.debug("undecodable text dropped (%s bytes)", len(value))
    return ""


def strip_markup(text: str) -> str:
    if not text:
        return ""
    if "<" not in text and "&" not in text:
        return one_line(text)

    tree = HTMLParser(text)
    tree.strip_tags(_DROP_TAGS)
    if tree.body is None:
        return ""
    return one_line(tree.body.text(separator=" "))


def _safe_url(url: str) -> bool:
    url = (url or "").strip()
    if not url:
        return False
    scheme = urlparse(url).scheme.lower()
    # relative links are fine, javascript:/data: are not
    return scheme == "" or scheme in _SAFE_SCHEMES


def sanitize_description(html: str) -> str:
    if not html or not html.strip():
        return ""

    tree = HTMLParser(html)
    tree.strip_tags(_DROP_TAGS)
    if tree.body is None:
        return ""

    present = {node.tag for node in tree.body.css("*")}
    disallowed = [t for t in present if t not in _ALLOWED_TAGS and t not in _STRUCTURAL]
    if disallowed:
        tree.unwrap_tags(disallowed)

    for node in tree.body.css("*"):
        allowed_attrs = _ALLOWED_TAGS.get(node.tag)
        if allowed_attrs is None:
            continue
        for name, value in list(node.attributes.items()):
            keep = name in allowed_attrs
            if keep and name in _URL_ATTRS:
                keep = _safe_url(value or "")
            if not keep:
                del node.attrs[name]

    out = _BODY_RE.sub("", tree.body.html or "")
    return out.strip()


def normalize_entry(entry: FeedEntry) -> FeedEntry | None:
    title = strip_markup(coerce_text(entry.title))
    link = canonicalize_url(coerce_text(entry.link))
    description = sanitize_description(coerce_text(entry.description))

    if not title and not link:
        return None

    return FeedEntry(
        title=title,
        link=link,
        description=description,
        published_at=entry.published_at,
    )
