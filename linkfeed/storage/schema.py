from __future__ import annotations

ITEMS_TABLE = "feed_items"

MAX_CATEGORY_CHARS = 100
MAX_URL_CHARS = 500

SCHEMA_SQL = f"""
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS {ITEMS_TABLE} (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  category TEXT NOT NULL DEFAULT '' CHECK (length(category) <= {MAX_CATEGORY_CHARS}),
  title TEXT NOT NULL,
  link TEXT NOT NULL CHECK (length(link) <= {MAX_URL_CHARS}),
  description TEXT NOT NULL DEFAULT '',
  publish_date INTEGER NOT NULL,
  source_name TEXT NOT NULL,
  source_url TEXT NOT NULL DEFAULT '' CHECK (length(source_url) <= {MAX_URL_CHARS}),
  logo_url TEXT NOT NULL DEFAULT '' CHECK (length(logo_url) <= {MAX_URL_CHARS}),
  created_at INTEGER NOT NULL,
  updated_at INTEGER NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS ux_feed_items_link_source ON {ITEMS_TABLE}(link, source_name);
CREATE INDEX IF NOT EXISTS ix_feed_items_category_publish ON {ITEMS_TABLE}(category, publish_date);
CREATE INDEX IF NOT EXISTS ix_feed_items_publish ON {ITEMS_TABLE}(publish_date);
"""
