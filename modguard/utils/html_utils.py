# ============================================================
# HTML UTILS - ЭКРАНИРОВАНИЕ ДЛЯ СООБЩЕНИЙ TELEGRAM
# ============================================================
# Все исходящие сообщения отправляются с parse_mode=HTML.
# Любая строка от пользователя (имя, текст сообщения, название
# чата, детали проверки) экранируется перед подстановкой.
# ============================================================

from typing import Optional


def escape_html(text: Optional[str]) -> str:
    """
    Экранирует специальные HTML символы.

    Example:
        escape_html("5 < 10")  # "5 &lt; 10"
        escape_html("A & B")   # "A &amp; B"
    """
    if text is None:
        return ""
    return (
        str(text)
        .replace('&', '&amp;')
        .replace('<', '&lt;')
        .replace('>', '&gt;')
    )


def safe_format_html(template: str, **kwargs) -> str:
    """
    Форматирует HTML шаблон, экранируя все подставляемые значения.

    Example:
        safe_format_html("Чат: <b>{title}</b>", title="<script>")
        # "Чат: <b>&lt;script&gt;</b>"
    """
    escaped_kwargs = {
        key: escape_html(str(value))
        for key, value in kwargs.items()
    }
    return template.format(**escaped_kwargs)


def truncate(text: Optional[str], limit: int = 200) -> str:
    """Обрезает текст до limit символов с многоточием."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit - 3] + "..."


def user_link(user_id: int, display_name: Optional[str] = None) -> str:
    """Ссылка на пользователя tg://user с экранированным именем."""
    name = escape_html(display_name) if display_name else f"id{user_id}"
    return f"<a href='tg://user?id={user_id}'>{name}</a>"
