import asyncio
import logging
from typing import Set

import aiohttp

from modguard import config
from modguard.utils.html_utils import escape_html


# ==== НАСТРОЙКА ЛОГИРОВАНИЯ ПРОЦЕССА ====

def setup_logging(level: str = None) -> logging.Logger:
    """
    Консольный вывод + пересылка WARNING и выше в канал логов.

    Вызывается один раз при старте бота.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO))

    # Создаем обработчик для консоли
    console_handler = logging.StreamHandler()
    console_formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(name)s - %(message)s')
    console_handler.setFormatter(console_formatter)
    root.addHandler(console_handler)

    # Создаем обработчик для Telegram
    telegram_handler = TelegramLogHandler(level=logging.WARNING)
    telegram_handler.setFormatter(logging.Formatter('%(levelname)s - %(name)s - %(message)s'))
    root.addHandler(telegram_handler)

    # Встроенное логирование aiogram только для ошибок
    for logger_name in ("aiogram", "aiogram.dispatcher", "aiogram.event"):
        log = logging.getLogger(logger_name)
        log.addHandler(console_handler)
        log.setLevel(logging.ERROR)
        log.propagate = False

    return root


class TelegramLogHandler(logging.Handler):
    """Пересылает записи лога в канал логов (только внутри работающего event loop)."""

    def emit(self, record: logging.LogRecord) -> None:
        # Ошибки отправки самого лога не пересылаем, иначе зациклимся
        if record.name == __name__:
            return
        if not config.BOT_TOKEN or not config.LOG_CHANNEL_ID:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Вне event loop (старт, тесты) пересылать некуда
            return
        try:
            text = f"<pre>{escape_html(self.format(record))[:3500]}</pre>"
        except Exception:
            self.handleError(record)
            return
        loop.create_task(send_formatted_log(text))


# ==== СПЕЦИАЛЬНЫЕ ФОРМАТИРОВАННЫЕ ЛОГИ ДЛЯ TELEGRAM ====

async def send_formatted_log(message: str) -> bool:
    """Отправляет отформатированное сообщение в канал логов в Telegram"""
    if not config.BOT_TOKEN or not config.LOG_CHANNEL_ID:
        logging.getLogger(__name__).debug("BOT_TOKEN или LOG_CHANNEL_ID не установлены, лог не отправлен")
        return False

    url = f"https://api.telegram.org/bot{config.BOT_TOKEN}/sendMessage"
    payload = {
        "chat_id": config.LOG_CHANNEL_ID,
        "text": message,
        "parse_mode": "HTML",
        "disable_web_page_preview": True
    }

    async with aiohttp.ClientSession() as session:
        try:
            resp = await session.post(url, data=payload)
            if resp.status != 200:
                text = await resp.text()
                logging.getLogger(__name__).error(f"❌ Telegram API Error: {resp.status}: {text}")
                return False
            return True
        except Exception as e:
            logging.getLogger(__name__).error(f"❌ Ошибка при отправке лога в Telegram: {e}")
            return False


def _chat_line(chat_id: int, chat_name: str = None) -> str:
    link_id = str(chat_id).replace('-100', '')
    return f"<a href='https://t.me/c/{link_id}'>{escape_html(chat_name or str(chat_id))}</a> [{chat_id}]"


def _user_line(user_id: int, username: str = None) -> str:
    return f"<a href='tg://user?id={user_id}'>{escape_html(username) if username else f'id{user_id}'}</a> [{user_id}]"


def format_auto_ban_log(
    user_id: int,
    username: str,
    chat_id: int,
    chat_name: str,
    message_preview: str,
    top_checks,
    banned_count: int,
    total_chats: int,
    message_deleted: bool,
) -> str:
    """
    Сводка автобана для канала логов.

    top_checks: до трёх пар (имя проверки, уверенность, детали).
    """
    msg = (
        f"🚫 #АВТОБАН 🔴\n"
        f"• Кто: {_user_line(user_id, username)}\n"
        f"• Группа: {_chat_line(chat_id, chat_name)}\n"
        f"• Сообщение: <i>{escape_html(message_preview)}</i>\n"
    )
    if top_checks:
        msg += "• Сработавшие проверки:\n"
        for name, confidence, details in top_checks:
            line = f"  – {escape_html(name)} ({confidence}%)"
            if details:
                line += f": {escape_html(details)}"
            msg += line + "\n"
    msg += (
        f"• Забанен в {banned_count}/{total_chats} управляемых чатах\n"
        f"• Сообщение удалено: {'да' if message_deleted else 'нет'}\n"
        f"#id{user_id}"
    )
    return msg


# ==== ФОНОВЫЕ ЗАДАЧИ ====

# Цикл событий держит на задачи только слабые ссылки
_background_tasks: Set[asyncio.Task] = set()


def _log_task_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logging.getLogger(__name__).error(f"❌ Фоновая задача {task.get_name()} завершилась ошибкой: {exc}")


def fire_and_forget(coro, name: str = None) -> asyncio.Task:
    """Запускает корутину в фоне; исключение попадёт в лог, а не потеряется."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    task.add_done_callback(_log_task_result)
    return task
