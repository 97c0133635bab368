# modguard/services/moderation/check_gate.py
"""
Гейт проверок контента.

Решает по каждому входящему сообщению:
- пропустить детекцию целиком (служебный аккаунт, доверенный/админ
  без критических проверок)
- выполнить детекцию, но учитывать только критические проверки
  (доверенный/админ, критические проверки настроены)
- выполнить полную детекцию (обычный пользователь)
"""

# Импортируем логгер для записи событий
import logging
# Импортируем типы для аннотаций
from typing import FrozenSet, List

# Импортируем проверку служебных аккаунтов
from modguard.config import is_system_account
# Импортируем типы конвейера
from modguard.services.moderation.types import (
    CheckResultType,
    ContentCheckRequest,
    ContentDetectionResult,
    GateResult,
)


# Создаём логгер для этого модуля
logger = logging.getLogger(__name__)

# Причины пропуска детекции
REASON_SYSTEM_ACCOUNT = "platform system account"
REASON_CRITICAL_PASSED = "critical checks passed"


def collect_critical_violations(
    result: ContentDetectionResult,
    critical_names: FrozenSet[str],
) -> List[str]:
    """
    Нарушения критических проверок: имя совпадает без учёта регистра
    и классификация не Ham.

    Returns:
        Строки вида "UrlBlocklist: blocked domain example.com"
    """
    violations = []
    for check in result.check_results or ():
        if check.check_name.lower() not in critical_names:
            continue
        if check.result == CheckResultType.HAM:
            continue
        violations.append(f"{check.check_name}: {check.details or check.result.value}")
    return violations


class CheckGate:
    """
    Координатор проверок контента.

    Args:
        trust_repository: объект с методом is_trusted(user_id)
        admin_repository: объект с методом is_admin(chat_id, user_id)
        config_service: объект с методом critical_check_names(chat_id)
        detection_engine: объект с методом check(request) -> ContentDetectionResult
    """

    def __init__(self, trust_repository, admin_repository, config_service, detection_engine):
        self._trust_repository = trust_repository
        self._admin_repository = admin_repository
        self._config_service = config_service
        self._detection_engine = detection_engine

    async def evaluate(self, request: ContentCheckRequest) -> GateResult:
        # ═══════════════════════════════════════════════════════════
        # ШАГ 1: СЛУЖЕБНЫЕ АККАУНТЫ ПЛАТФОРМЫ
        # ═══════════════════════════════════════════════════════════
        # Ни репозиториев, ни движка: служебное сообщение может прийти
        # раньше, чем появится запись пользователя
        if is_system_account(request.user_id):
            logger.debug(f"[GATE] Пропуск проверки служебного аккаунта {request.user_id}")
            return GateResult(
                is_user_trusted=True,
                is_user_admin=False,
                spam_check_skipped=True,
                skip_reason=REASON_SYSTEM_ACCOUNT,
            )

        # ═══════════════════════════════════════════════════════════
        # ШАГ 2: СТАТУС ПОЛЬЗОВАТЕЛЯ И КРИТИЧЕСКИЕ ПРОВЕРКИ
        # ═══════════════════════════════════════════════════════════
        is_trusted = await self._trust_repository.is_trusted(request.user_id)
        is_admin = await self._admin_repository.is_admin(request.chat_id, request.user_id)
        critical_names = await self._config_service.critical_check_names(request.chat_id)

        # Обогащаем запрос статусом пользователя (новый объект)
        enriched = request.with_user_status(is_trusted, is_admin)
        privileged = is_trusted or is_admin

        # ═══════════════════════════════════════════════════════════
        # ШАГ 3: ДОВЕРЕННЫЙ/АДМИН БЕЗ КРИТИЧЕСКИХ ПРОВЕРОК
        # ═══════════════════════════════════════════════════════════
        if privileged and not critical_names:
            # При обоих статусах в причине указываем "trusted"
            status = "trusted" if is_trusted else "admin"
            reason = f"User is {status} and no critical checks are configured"
            logger.debug(f"[GATE] Пропуск детекции для {request.user_id} в {request.chat_id}: {reason}")
            return GateResult(
                is_user_trusted=is_trusted,
                is_user_admin=is_admin,
                spam_check_skipped=True,
                skip_reason=reason,
            )

        # ═══════════════════════════════════════════════════════════
        # ШАГ 4-5: ЗАПУСК ДВИЖКА ДЕТЕКЦИИ
        # ═══════════════════════════════════════════════════════════
        result = await self._detection_engine.check(enriched)

        if not privileged:
            # Обычный пользователь: полный результат
            return GateResult(
                is_user_trusted=is_trusted,
                is_user_admin=is_admin,
                spam_check_skipped=False,
                spam_result=result,
            )

        # Доверенный/админ: критические проверки нельзя обойти доверием
        violations = collect_critical_violations(result, critical_names)

        if not violations:
            logger.debug(f"[GATE] Критические проверки пройдены для {request.user_id} в {request.chat_id}")
            return GateResult(
                is_user_trusted=is_trusted,
                is_user_admin=is_admin,
                spam_check_skipped=True,
                skip_reason=REASON_CRITICAL_PASSED,
            )

        logger.warning(
            f"[GATE] Нарушение критических проверок пользователем {request.user_id} "
            f"(trusted={is_trusted}, admin={is_admin}) в {request.chat_id}: {'; '.join(violations)}"
        )
        return GateResult(
            is_user_trusted=is_trusted,
            is_user_admin=is_admin,
            spam_check_skipped=False,
            critical_check_violations=tuple(violations),
            spam_result=result,
        )
