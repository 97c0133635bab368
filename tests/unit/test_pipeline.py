# tests/unit/test_pipeline.py
"""
Сквозные тесты обработки сообщения группы.

Сохранение → гейт → маршрутизатор → оркестратор → исполнение,
на реальных репозиториях (SQLite), моках платформы и движка.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from modguard.database.models_moderation import UserActionType
from modguard.services.detection_client import DetectionEngineError
from modguard.services.enforcement.job_scheduler import DELETE_USER_MESSAGES_JOB
from modguard.services.moderation.detection_router import RoutedAction
from modguard.services.moderation.handlers.audit_handler import EVENT_USER_BANNED
from modguard.services.moderation.types import Actor, ModerationMessage
from tests.utils import build_stack, make_result


SPAMMER_ID = 4242
ADMIN_ID = 100
HEALTHY_CHATS = (-1001, -1002)
UNHEALTHY_CHAT = -1003


@pytest.fixture
def scheduler():
    scheduler = MagicMock()
    scheduler.schedule = AsyncMock(return_value="job-1")
    return scheduler


@pytest.fixture
async def stack(session_factory, platform_mock, healthy_cache, scheduler):
    healthy_cache.mark(*HEALTHY_CHATS)
    healthy_cache.mark(UNHEALTHY_CHAT, healthy=False)
    s = build_stack(session_factory, platform_mock, healthy_cache, scheduler)
    for chat_id in HEALTHY_CHATS + (UNHEALTHY_CHAT,):
        await s.chats.upsert_chat(chat_id, f"Chat {chat_id}")
    # Связанный админ первого чата получает ЛС-уведомления
    await s.admins.upsert_admin(-1001, ADMIN_ID, "owner", is_creator=True, is_linked=True)
    return s


def _message(message_id=555, user_id=SPAMMER_ID, chat_id=-1001, text="Crypto signals, 300% profit, DM me"):
    return ModerationMessage(
        message_id=message_id,
        chat_id=chat_id,
        user_id=user_id,
        text=text,
        chat_title="Main chat",
        user_display_name="spammer",
    )


@pytest.mark.asyncio
async def test_confident_spam_from_untrusted_user_is_auto_banned(stack, scheduler):
    stack.engine.check.return_value = make_result(85, [("OpenAI", "Spam", 90), ("StopWords", "Spam", 60)])

    outcome = await stack.pipeline.process(_message())
    # Сводка автобана отправляется фоновой задачей
    await asyncio.sleep(0)

    assert outcome.error is None
    assert outcome.decision.action == RoutedAction.AUTO_BAN

    # Бан во всех здоровых чатах, нездоровый пропущен
    banned = sorted(call.args[0] for call in stack.platform.ban.await_args_list)
    assert banned == sorted(HEALTHY_CHATS)

    # Журнал действий: BAN от автодетекции и снятие доверия
    history = await stack.user_actions.list_for_user(SPAMMER_ID)
    kinds = [r.action_type for r in history]
    assert UserActionType.BAN in kinds
    assert UserActionType.UNTRUST in kinds
    ban = await stack.user_actions.get_active_ban(SPAMMER_ID)
    assert ban.issued_by_type == "auto_detection"
    assert ban.reason == "Auto-ban: High confidence spam (Net: 85, OpenAI: 90%)"

    # Аудит
    assert EVENT_USER_BANNED in [e.event_type for e in await stack.audit.list_for_user(SPAMMER_ID)]

    # OpenAI 90% достаточно для обучающей выборки
    samples = await stack.samples.list_samples(is_spam=True)
    assert [(s.source, s.confidence, s.message_id) for s in samples] == [("auto_detection", 90, 555)]

    # Уведомление админа (ЛС) и канал логов
    dm_targets = [call.args[0] for call in stack.platform.send_message.await_args_list]
    assert ADMIN_ID in dm_targets
    summaries = [call.args[0] for call in stack.journal.await_args_list]
    assert any("#АВТОБАН" in text and "2/3" in text for text in summaries)

    # Сообщение удалено и помечено в истории
    stack.platform.delete_message.assert_awaited_once_with(-1001, 555)
    record = await stack.messages.get_message(-1001, 555)
    assert record.deleted_at is not None

    # Одна задача очистки с задержкой 15 секунд
    scheduler.schedule.assert_awaited_once_with(
        DELETE_USER_MESSAGES_JOB,
        {"telegram_user_id": SPAMMER_ID},
        delay_seconds=15,
    )


@pytest.mark.asyncio
async def test_same_spam_in_two_chats_schedules_one_cleanup(stack, scheduler):
    stack.engine.check.return_value = make_result(85, [("OpenAI", "Spam", 90)])

    await stack.pipeline.process(_message(message_id=1, chat_id=-1001))
    await stack.pipeline.process(_message(message_id=2, chat_id=-1002))
    await asyncio.sleep(0)

    assert scheduler.schedule.await_count == 1


@pytest.mark.asyncio
async def test_borderline_message_creates_report_only(stack):
    stack.engine.check.return_value = make_result(30, [("OpenAI", "Spam", 60, "looks promotional")])

    outcome = await stack.pipeline.process(_message())

    assert outcome.decision.action == RoutedAction.REVIEW
    stack.platform.ban.assert_not_awaited()
    stack.platform.delete_message.assert_not_awaited()
    reports = await stack.reports.list_pending(chat_id=-1001)
    assert len(reports) == 1
    assert reports[0].admin_notes.startswith("Borderline detection - Net: 30")
    assert "OpenAI: Spam (60%) - looks promotional" in reports[0].admin_notes


@pytest.mark.asyncio
async def test_trusted_user_skips_detection(stack):
    await stack.orchestrator.trust(SPAMMER_ID, Actor.telegram_user(ADMIN_ID))

    outcome = await stack.pipeline.process(_message())

    assert outcome.gate.spam_check_skipped is True
    assert outcome.decision is None
    stack.engine.check.assert_not_awaited()
    # Сообщение всё равно сохранено для возможной очистки
    assert await stack.messages.get_message(-1001, 555) is not None


@pytest.mark.asyncio
async def test_trusted_user_violating_critical_check(stack):
    await stack.config_repo.upsert_config(0, critical_checks="UrlBlocklist")
    await stack.orchestrator.trust(SPAMMER_ID, Actor.telegram_user(ADMIN_ID))
    stack.engine.check.return_value = make_result(
        90, [("UrlBlocklist", "Spam", 100, "blocked domain evil.example"), ("OpenAI", "Spam", 95)]
    )

    outcome = await stack.pipeline.process(_message())

    assert outcome.critical_violation_handled is True
    assert outcome.decision is None
    # Ни бана, ни предупреждения
    stack.platform.ban.assert_not_awaited()
    assert await stack.user_actions.is_banned(SPAMMER_ID) is False
    assert await stack.user_actions.get_active_warning_count(SPAMMER_ID) == 0
    stack.platform.delete_message.assert_awaited_once_with(-1001, 555)

    # Уведомление пользователю в ЛС
    user_dm = [c for c in stack.platform.send_message.await_args_list if c.args[0] == SPAMMER_ID]
    assert len(user_dm) == 1
    assert "1. UrlBlocklist: blocked domain evil.example" in user_dm[0].args[1]


@pytest.mark.asyncio
async def test_system_account_message_is_ignored(stack):
    outcome = await stack.pipeline.process(_message(user_id=777000))

    assert outcome.gate.skip_reason == "platform system account"
    stack.engine.check.assert_not_awaited()


@pytest.mark.asyncio
async def test_engine_failure_is_contained(stack):
    stack.engine.check.side_effect = DetectionEngineError("HTTP 503")

    outcome = await stack.pipeline.process(_message())

    assert outcome.error == "HTTP 503"
    stack.platform.ban.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancellation_propagates(stack):
    stack.engine.check.side_effect = asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await stack.pipeline.process(_message())


@pytest.mark.asyncio
async def test_cleanup_job_deletes_all_user_messages(stack):
    stack.engine.check.return_value = make_result(-10, [("OpenAI", "Ham", 90)])
    await stack.pipeline.process(_message(message_id=1, chat_id=-1001))
    await stack.pipeline.process(_message(message_id=2, chat_id=-1001))
    await stack.pipeline.process(_message(message_id=3, chat_id=-1002))

    await stack.message_handler.handle_cleanup_job({"telegram_user_id": SPAMMER_ID})

    calls = {call.args[0]: call.args[1] for call in stack.platform.delete_messages.await_args_list}
    assert calls == {-1001: [1, 2], -1002: [3]}
    assert await stack.messages.list_user_messages(SPAMMER_ID) == []
