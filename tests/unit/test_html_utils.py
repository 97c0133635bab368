# tests/unit/test_html_utils.py
"""
Тесты для HTML утилит.

Всё, что приходит от пользователя, экранируется перед
отправкой с parse_mode=HTML.
"""

from modguard.utils.html_utils import escape_html, safe_format_html, truncate, user_link


class TestEscapeHtml:
    """Тесты экранирования."""

    def test_special_chars(self):
        assert escape_html("5 < 10 & 7 > 3") == "5 &lt; 10 &amp; 7 &gt; 3"

    def test_none_is_empty(self):
        assert escape_html(None) == ""

    def test_non_string_values(self):
        assert escape_html(42) == "42"


def test_safe_format_escapes_values_not_template():
    result = safe_format_html("Чат: <b>{title}</b>", title="<script>")
    assert result == "Чат: <b>&lt;script&gt;</b>"


def test_truncate():
    assert truncate(None) == ""
    assert truncate("short", 10) == "short"
    assert truncate("a" * 20, 10) == "aaaaaaa..."


def test_user_link():
    assert user_link(42) == "<a href='tg://user?id=42'>id42</a>"
    assert user_link(42, "<Bob>") == "<a href='tg://user?id=42'>&lt;Bob&gt;</a>"
