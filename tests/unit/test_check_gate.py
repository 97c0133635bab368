# tests/unit/test_check_gate.py
"""
Тесты гейта проверок контента.

Покрывает:
- Служебные аккаунты (никаких обращений к репозиториям и движку)
- Доверенных/админов без критических проверок
- Критические проверки для доверенных/админов
- Обычных пользователей (полный результат)
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from modguard.services.moderation.check_gate import CheckGate, collect_critical_violations
from modguard.services.moderation.types import ContentCheckRequest
from tests.utils import make_result


def _gate(trusted=False, admin=False, critical=frozenset(), result=None):
    trust_repo = MagicMock()
    trust_repo.is_trusted = AsyncMock(return_value=trusted)
    admin_repo = MagicMock()
    admin_repo.is_admin = AsyncMock(return_value=admin)
    config = MagicMock()
    config.critical_check_names = AsyncMock(return_value=frozenset(critical))
    engine = MagicMock()
    engine.check = AsyncMock(return_value=result if result is not None else make_result(0))
    return CheckGate(trust_repo, admin_repo, config, engine), trust_repo, admin_repo, engine


REQUEST = ContentCheckRequest(user_id=42, chat_id=-100500, message_text="hello", message_id=7)


@pytest.mark.asyncio
@pytest.mark.parametrize("system_id", [777000, 1087968824, 136817688])
async def test_system_account_skips_everything(system_id):
    gate, trust_repo, admin_repo, engine = _gate()
    request = ContentCheckRequest(user_id=system_id, chat_id=-1, message_text="channel post")

    result = await gate.evaluate(request)

    assert result.spam_check_skipped is True
    assert result.skip_reason == "platform system account"
    assert result.is_user_trusted is True
    assert result.spam_result is None
    trust_repo.is_trusted.assert_not_awaited()
    admin_repo.is_admin.assert_not_awaited()
    engine.check.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "trusted, admin, expected_status",
    [(True, False, "trusted"), (False, True, "admin"), (True, True, "trusted")],
)
async def test_privileged_without_critical_checks_skips_detection(trusted, admin, expected_status):
    gate, _, _, engine = _gate(trusted=trusted, admin=admin)

    result = await gate.evaluate(REQUEST)

    assert result.spam_check_skipped is True
    assert result.skip_reason == f"User is {expected_status} and no critical checks are configured"
    assert result.spam_result is None
    engine.check.assert_not_awaited()


@pytest.mark.asyncio
async def test_regular_user_gets_full_result_with_status_in_request():
    detection = make_result(30, [("OpenAI", "Spam", 70)])
    gate, _, _, engine = _gate(result=detection)

    result = await gate.evaluate(REQUEST)

    assert result.spam_check_skipped is False
    assert result.spam_result is detection
    assert result.critical_check_violations == ()
    sent = engine.check.await_args.args[0]
    assert sent.is_user_trusted is False
    assert sent.is_user_admin is False
    # Исходный запрос не меняется
    assert REQUEST.is_user_trusted is False


@pytest.mark.asyncio
async def test_trusted_user_passing_critical_checks_is_skipped():
    detection = make_result(90, [("UrlBlocklist", "Ham", 0), ("OpenAI", "Spam", 95)])
    gate, _, _, engine = _gate(trusted=True, critical={"urlblocklist"}, result=detection)

    result = await gate.evaluate(REQUEST)

    engine.check.assert_awaited_once()
    assert engine.check.await_args.args[0].is_user_trusted is True
    assert result.spam_check_skipped is True
    assert result.skip_reason == "critical checks passed"
    # Спам-оценка доверенному не применяется
    assert result.spam_result is None


@pytest.mark.asyncio
async def test_admin_violating_critical_check_gets_violations():
    detection = make_result(
        40,
        [("UrlBlocklist", "Spam", 100, "blocked domain evil.example"), ("OpenAI", "Spam", 95)],
    )
    gate, _, _, _ = _gate(admin=True, critical={"urlblocklist"}, result=detection)

    result = await gate.evaluate(REQUEST)

    assert result.spam_check_skipped is False
    assert result.critical_check_violations == ("UrlBlocklist: blocked domain evil.example",)
    assert result.spam_result is detection
    assert result.needs_routing is True


def test_collect_violations_matches_case_insensitively_and_ignores_ham():
    detection = make_result(
        0,
        [
            ("urlBLOCKLIST", "Review", 60),
            ("FileScanning", "Malware", 100, "EICAR"),
            ("FileScanning", "Ham", 0),
            ("OpenAI", "Spam", 99),
        ],
    )
    violations = collect_critical_violations(detection, frozenset({"urlblocklist", "filescanning"}))
    assert violations == ["urlBLOCKLIST: Review", "FileScanning: EICAR"]
