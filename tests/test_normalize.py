"""Text normalization applied to fetched entries."""

from __future__ import annotations

import pytest

from conftest import NOW, make_entry
from linkfeed.rss.normalize import DEFAULT_ENCODINGS, coerce_text, normalize_entry, sanitize_description, strip_markup
from linkfeed.utils import canonicalize_url


class TestCoerceText:
    def test_none_becomes_empty(self) -> None:
        assert coerce_text(None) == ""

    def test_plain_str_passes_through(self) -> None:
        assert coerce_text("héllo 中文") == "héllo 中文"

    def test_utf8_bytes(self) -> None:
        assert coerce_text("中文标题".encode("utf-8")) == "中文标题"

    def test_gbk_bytes(self) -> None:
        assert coerce_text("中文标题".encode("gbk")) == "中文标题"

    def test_gb2312_bytes_decode_through_gbk(self) -> None:
        assert DEFAULT_ENCODINGS == ("utf-8", "gbk")
        assert coerce_text("简体中文".encode("gb2312")) == "简体中文"

    def test_surrogate_escaped_str_is_recovered(self) -> None:
        broken = "中文".encode("gbk").decode("utf-8", errors="surrogateescape")
        assert coerce_text(broken) == "中文"

    def test_undecodable_bytes_fall_back_to_empty(self) -> None:
        assert coerce_text(b"\xff\xff\xff") == ""

    def test_custom_encoding_order(self) -> None:
        assert coerce_text("café".encode("latin-1"), encodings=("ascii", "latin-1")) == "café"


class TestStripMarkup:
    def test_removes_tags_and_entities(self) -> None:
        assert strip_markup("<b>Hello</b> &amp; <i>world</i>") == "Hello & world"

    def test_drops_script_content(self) -> None:
        assert strip_markup("<script>alert(1)</script>Title") == "Title"

    def test_collapses_whitespace(self) -> None:
        assert strip_markup("  line one\n\n  line two  ") == "line one line two"

    def test_markup_only_is_empty(self) -> None:
        assert strip_markup("<br/><span></span>") == ""


class TestSanitizeDescription:
    def test_keeps_safe_subset(self) -> None:
        out = sanitize_description('<p>Hi <a href="https://example.com/x">there</a> <strong>bold</strong></p>')
        assert "<p>" in out
        assert 'href="https://example.com/x"' in out
        assert "<strong>bold</strong>" in out

    def test_removes_scripts_and_handlers(self) -> None:
        out = sanitize_description('<p onclick="steal()">text</p><script>alert(1)</script>')
        assert "onclick" not in out
        assert "script" not in out
        assert "alert" not in out
        assert "text" in out

    def test_drops_unsafe_urls(self) -> None:
        out = sanitize_description('<a href="javascript:alert(1)">x</a><img src="data:image/png;base64,AAA" alt="pic">')
        assert "javascript" not in out
        assert "data:" not in out
        assert 'alt="pic"' in out

    def test_unwraps_disallowed_tags(self) -> None:
        out = sanitize_description('<div class="wrap"><p>text</p><font color="red">red</font></div>')
        assert "<div" not in out
        assert "<font" not in out
        assert "class=" not in out
        assert "<p>text</p>" in out
        assert "red" in out

    def test_empty(self) -> None:
        assert sanitize_description("") == ""
        assert sanitize_description("   ") == ""


class TestNormalizeEntry:
    def test_normalizes_all_fields(self) -> None:
        entry = make_entry(
            1,
            title="  <em>Hello</em>   world ",
            link=" https://blog.example.com/p?id=1&utm_source=rss#comments ",
            description="<p>ok</p><script>x()</script>",
        )
        out = normalize_entry(entry)
        assert out is not None
        assert out.title == "Hello world"
        assert out.link == "https://blog.example.com/p?id=1"
        assert out.description == "<p>ok</p>"
        assert out.published_at == NOW

    def test_entry_without_title_and_link_is_dropped(self) -> None:
        assert normalize_entry(make_entry(1, title="<b> </b>", link="   ")) is None

    def test_empty_title_is_kept_for_placeholder(self) -> None:
        out = normalize_entry(make_entry(1, title="<img src='x.png'>"))
        assert out is not None
        assert out.title == ""
        assert out.link == "https://blog.example.com/posts/1"


class TestCanonicalizeUrl:
    def test_strips_tracking_params_and_fragment(self) -> None:
        url = "https://e.com/p?id=1&utm_source=rss&UTM_Medium=feed#comments"
        assert canonicalize_url(url) == "https://e.com/p?id=1"

    def test_only_tracking_params(self) -> None:
        assert canonicalize_url("https://e.com/p?utm_source=rss") == "https://e.com/p"

    @pytest.mark.parametrize(
        "url",
        [
            "https://e.com/index.php?p=1&amp",
            "https://e.com/s?q=a%20b&x=%7E",
            "https://e.com/s?a=1;b=2",
            "https://e.com/s?flag&q=a+b",
        ],
    )
    def test_other_queries_are_left_as_written(self, url: str) -> None:
        assert canonicalize_url(url) == url

    def test_removal_keeps_remaining_encoding(self) -> None:
        url = "https://e.com/s?q=a%20b&utm_campaign=x&flag"
        assert canonicalize_url(url) == "https://e.com/s?q=a%20b&flag"

    def test_empty(self) -> None:
        assert canonicalize_url("   ") == ""
