# tests/unit/test_repositories.py
"""
Тесты репозиториев модерации на временной SQLite базе.

Покрывает:
- Вычисление статусов из журнала действий (доверие, бан, предупреждения)
- Истечение записей
- Управляемые чаты и администраторов
- Историю сообщений, отчёты, настройки
"""

from datetime import timedelta

import pytest

from modguard.database.models import utcnow
from modguard.database.models_moderation import ReportStatus, UserActionType
from modguard.database.repositories import (
    AuditRepository,
    ChatAdminsRepository,
    ManagedChatsRepository,
    MessagesRepository,
    ModerationConfigRepository,
    ReportsRepository,
    TrainingSamplesRepository,
    UserActionsRepository,
)
from modguard.services.moderation.types import Actor, ActorType


ADMIN = Actor.telegram_user(1, "@admin")


# ============================================================
# ЖУРНАЛ ДЕЙСТВИЙ
# ============================================================

@pytest.mark.asyncio
async def test_trust_status_follows_latest_record(session_factory):
    repo = UserActionsRepository(session_factory)
    assert await repo.is_trusted(42) is False

    await repo.add_action(42, UserActionType.TRUST, ADMIN)
    assert await repo.is_trusted(42) is True

    await repo.add_action(42, UserActionType.UNTRUST, Actor.auto_detection(), reason="Trust revoked due to ban: spam")
    assert await repo.is_trusted(42) is False


@pytest.mark.asyncio
async def test_expired_trust_does_not_count(session_factory):
    repo = UserActionsRepository(session_factory)
    await repo.add_action(42, UserActionType.TRUST, ADMIN, expires_at=utcnow() - timedelta(minutes=1))
    assert await repo.is_trusted(42) is False


@pytest.mark.asyncio
async def test_ban_and_unban(session_factory):
    repo = UserActionsRepository(session_factory)
    await repo.add_action(42, UserActionType.BAN, Actor.auto_detection(), reason="spam", chat_id=-100, message_id=5)

    ban = await repo.get_active_ban(42)
    assert ban is not None
    assert ban.reason == "spam"
    assert ban.issued_by_type == ActorType.AUTO_DETECTION.value

    await repo.add_action(42, UserActionType.UNBAN, ADMIN)
    assert await repo.is_banned(42) is False


@pytest.mark.asyncio
async def test_expired_temp_ban_is_not_active(session_factory):
    repo = UserActionsRepository(session_factory)
    await repo.add_action(42, UserActionType.BAN, ADMIN, expires_at=utcnow() - timedelta(seconds=1))
    assert await repo.is_banned(42) is False


@pytest.mark.asyncio
async def test_warning_count_resets_after_unban(session_factory):
    repo = UserActionsRepository(session_factory)
    await repo.add_action(42, UserActionType.WARN, ADMIN)
    await repo.add_action(42, UserActionType.WARN, ADMIN)
    await repo.add_action(42, UserActionType.WARN, ADMIN, expires_at=utcnow() - timedelta(days=1))
    assert await repo.get_active_warning_count(42) == 2

    await repo.add_action(42, UserActionType.UNBAN, ADMIN)
    assert await repo.get_active_warning_count(42) == 0

    await repo.add_action(42, UserActionType.WARN, ADMIN)
    assert await repo.get_active_warning_count(42) == 1
    # Чужие предупреждения не считаются
    assert await repo.get_active_warning_count(43) == 0


@pytest.mark.asyncio
async def test_expire_restrictions_by_chat(session_factory):
    repo = UserActionsRepository(session_factory)
    await repo.add_action(42, UserActionType.RESTRICT, ADMIN, chat_id=-1, expires_at=utcnow() + timedelta(hours=1))
    await repo.add_action(42, UserActionType.RESTRICT, ADMIN, chat_id=-2, expires_at=utcnow() + timedelta(hours=1))

    assert await repo.expire_restrictions(42, chat_id=-1) == 1
    active = await repo.get_active_restrictions(42)
    assert [r.chat_id for r in active] == [-2]

    assert await repo.expire_restrictions(42) == 1
    assert await repo.get_active_restrictions(42) == []


@pytest.mark.asyncio
async def test_history_is_append_only(session_factory):
    repo = UserActionsRepository(session_factory)
    await repo.add_action(42, UserActionType.BAN, ADMIN)
    await repo.add_action(42, UserActionType.UNBAN, ADMIN)

    history = await repo.list_for_user(42)
    assert [r.action_type for r in history] == [UserActionType.BAN, UserActionType.UNBAN]


# ============================================================
# ЧАТЫ И АДМИНИСТРАТОРЫ
# ============================================================

@pytest.mark.asyncio
async def test_chat_upsert_and_deactivation(session_factory):
    repo = ManagedChatsRepository(session_factory)

    chat, created = await repo.upsert_chat(-100, "Group A")
    assert created is True
    assert chat.is_active is True

    _, created_again = await repo.upsert_chat(-100)
    assert created_again is False
    assert (await repo.get_chat(-100)).chat_name == "Group A"

    await repo.upsert_chat(-200, "Group B")
    await repo.mark_inactive(-100)
    assert [c.chat_id for c in await repo.list_active()] == [-200]

    # Повторное добавление бота реактивирует чат
    await repo.upsert_chat(-100, "Group A renamed")
    assert [c.chat_id for c in await repo.list_active()] == [-200, -100]
    assert (await repo.get_chat(-100)).chat_name == "Group A renamed"


@pytest.mark.asyncio
async def test_health_status_update(session_factory):
    repo = ManagedChatsRepository(session_factory)
    await repo.upsert_chat(-100, "Group")

    await repo.update_health_status(-100, "unhealthy")

    chat = await repo.get_chat(-100)
    assert chat.health_status == "unhealthy"
    assert chat.last_health_check is not None


@pytest.mark.asyncio
async def test_admin_lookup_across_chats(session_factory):
    repo = ChatAdminsRepository(session_factory)
    chats = ManagedChatsRepository(session_factory)
    for chat_id in (-100, -200):
        await chats.upsert_chat(chat_id)
    await repo.upsert_admin(-100, 42, "alice", is_creator=True)
    await repo.upsert_admin(-200, 42, "alice")
    await repo.upsert_admin(-200, 43, "bob", is_linked=True)

    assert await repo.is_admin(-100, 42) is True
    assert await repo.is_admin(-100, 43) is False
    assert sorted(await repo.chats_where_admin(42)) == [-200, -100]

    await repo.deactivate_admin(-100, 42)
    assert await repo.chats_where_admin(42) == [-200]
    admins = await repo.get_chat_admins(-200)
    assert {a.telegram_id for a in admins} == {42, 43}
    assert [a.is_linked for a in admins if a.telegram_id == 43] == [True]


@pytest.mark.asyncio
async def test_admin_of_inactive_chat_is_not_protected(session_factory):
    chats = ManagedChatsRepository(session_factory)
    repo = ChatAdminsRepository(session_factory)
    await chats.upsert_chat(-100)
    await chats.upsert_chat(-300)
    await repo.upsert_admin(-100, 42)
    await repo.upsert_admin(-300, 42)
    # Админ чата, которого нет в управляемых, тоже не считается
    await repo.upsert_admin(-999, 42)

    await chats.mark_inactive(-300)

    assert await repo.chats_where_admin(42) == [-100]
    await chats.mark_inactive(-100)
    assert await repo.chats_where_admin(42) == []


@pytest.mark.asyncio
async def test_admin_reactivation_keeps_link_flag(session_factory):
    repo = ChatAdminsRepository(session_factory)
    await repo.upsert_admin(-100, 42, is_linked=True)
    await repo.deactivate_admin(-100, 42)

    admin = await repo.upsert_admin(-100, 42, "alice")

    assert admin.is_active is True
    assert admin.is_linked is True
    assert admin.username == "alice"


# ============================================================
# СООБЩЕНИЯ, АУДИТ, ОТЧЁТЫ
# ============================================================

@pytest.mark.asyncio
async def test_message_save_is_idempotent_and_deletion_is_tracked(session_factory):
    repo = MessagesRepository(session_factory)

    _, created = await repo.save_message(-100, 1, 42, "hello")
    _, created_again = await repo.save_message(-100, 1, 42, "hello")
    await repo.save_message(-200, 2, 42, "world")
    assert (created, created_again) == (True, False)

    await repo.mark_deleted(-100, 1, "auto_detection")

    record = await repo.get_message(-100, 1)
    assert record.deleted_at is not None
    assert record.deletion_source == "auto_detection"
    assert [m.message_id for m in await repo.list_user_messages(42)] == [2]
    assert len(await repo.list_user_messages(42, include_deleted=True)) == 2


@pytest.mark.asyncio
async def test_audit_records_actor(session_factory):
    repo = AuditRepository(session_factory)
    await repo.log_event("UserBanned", Actor.auto_detection(), target_user_id=42, value="spam")

    entries = await repo.list_for_user(42)
    assert len(entries) == 1
    assert entries[0].actor_type == "auto_detection"
    assert entries[0].value == "spam"


@pytest.mark.asyncio
async def test_audit_actor_is_restored_from_columns(session_factory):
    repo = AuditRepository(session_factory)
    admin = Actor.telegram_user(7, "@admin")
    await repo.log_event("UserWarned", admin, target_user_id=42)

    entry = (await repo.list_for_user(42))[0]
    restored = Actor.from_db(entry.actor_type, entry.actor_id, entry.actor_name)
    assert restored == admin
    assert str(restored) == "@admin"


@pytest.mark.asyncio
async def test_reports_default_to_pending_automated(session_factory):
    repo = ReportsRepository(session_factory)
    report = await repo.create_report(message_id=5, chat_id=-100, admin_notes="Borderline detection - Net: 10")

    assert report.id is not None
    assert report.status == ReportStatus.PENDING
    assert report.is_automated is True
    assert report.reported_by_name == "Auto-Detection"
    assert [r.id for r in await repo.list_pending(chat_id=-100)] == [report.id]
    assert await repo.list_pending(chat_id=-999) == []


@pytest.mark.asyncio
async def test_training_samples_filter_by_class(session_factory):
    repo = TrainingSamplesRepository(session_factory)
    await repo.add_sample("buy now", True, "manual", ADMIN, confidence=0.9)
    await repo.add_sample("hello all", False, "manual", ADMIN)

    spam = await repo.list_samples(is_spam=True)
    assert [s.message_text for s in spam] == ["buy now"]
    assert spam[0].added_by_type == "telegram_user"
    assert len(await repo.list_samples()) == 2


@pytest.mark.asyncio
async def test_config_upsert_ignores_unknown_keys(session_factory):
    repo = ModerationConfigRepository(session_factory)
    assert await repo.get_config(-100) is None

    await repo.upsert_config(-100, auto_ban_threshold=70, no_such_setting=1)
    config = await repo.upsert_config(-100, critical_checks="UrlBlocklist")

    assert config.auto_ban_threshold == 70
    assert config.critical_checks == "UrlBlocklist"
    assert not hasattr(config, "no_such_setting")
