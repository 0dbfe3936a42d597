from __future__ import annotations

import logging
from pathlib import Path

import yaml

from linkfeed.storage.types import FeedSource


logger = logging.getLogger(__name__)


def load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"sources yaml must be a mapping: {path}")
    return data


def _opt_str(raw: dict, *keys: str) -> str | None:
    for k in keys:
        v = raw.get(k)
        if v is None:
            continue
        v = str(v).strip()
        if v:
            return v
    return None


def parse_source(raw: object, index: int) -> FeedSource | None:
    if not isinstance(raw, dict):
        logger.warning("source #%s is not a mapping, skipped", index)
        return None

    name = _opt_str(raw, "name")
    if name is None:
        logger.warning("source #%s has no name, skipped", index)
        return None

    return FeedSource(
        id=_opt_str(raw, "id") or str(index),
        name=name,
        url=_opt_str(raw, "url") or "",
        feed_url=_opt_str(raw, "feed_url", "rss"),
        category=_opt_str(raw, "category", "notes"),
        logo_url=_opt_str(raw, "logo_url", "image"),
    )


def parse_sources(data: dict) -> list[FeedSource]:
    raw_list = data.get("sources") or []
    if not isinstance(raw_list, list):
        raise ValueError("'sources' must be a list")

    out: list[FeedSource] = []
    for idx, raw in enumerate(raw_list, start=1):
        src = parse_source(raw, idx)
        if src is not None:
            out.append(src)
    return sorted(out, key=lambda s: s.name)


class YamlSourceProvider:
    def __init__(self, path: Path) -> None:
        self._path = path

    def __call__(self) -> list[FeedSource]:
        return parse_sources(load_yaml(self._path))
