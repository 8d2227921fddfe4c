"""
Operator quota administration

Отдельная capability для операторов: не проходит через диспетчеризацию
пользовательских событий и проверяет operator id на каждом вызове.
"""

from typing import Iterable, Optional

from core.exceptions import OperatorRequired
from core.logging import LoggerMixin

from .models import UsageRecord
from .session_store import KeyedLock
from .transitions import ConsultationLimits
from .usage_store import UsageStore


class QuotaAdministration(LoggerMixin):

    def __init__(self, usage_store: UsageStore, limits: ConsultationLimits,
                 operator_ids: Iterable[int], locks: Optional[KeyedLock] = None):
        self.usage_store = usage_store
        self.limits = limits
        self.operator_ids = frozenset(operator_ids)
        # тот же KeyedLock, что у SessionStateMachine: запись UsageRecord по одному
        self.locks = locks or KeyedLock()

    def is_operator(self, user_id: int) -> bool:
        return user_id in self.operator_ids

    def _require_operator(self, operator_id: int) -> None:
        if not self.is_operator(operator_id):
            self.logger.log_error(
                "OPERATOR_REQUIRED",
                "Operator command rejected",
                user_id=operator_id,
            )
            raise OperatorRequired(operator_id)

    async def grant_quota(self, operator_id: int, user_id: int, amount: int) -> UsageRecord:
        """
        Add amount consultations to the user's allowance

        consultations_used не уменьшается: растёт extra_quota, и вместе с ней
        эффективный лимит max_consultations + extra_quota.
        """
        self._require_operator(operator_id)
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")

        async with self.locks.hold(user_id):
            record = await self.usage_store.get(user_id)
            record.extra_quota += amount
            await self.usage_store.save(record)

        self.logger.log_user_action(
            "quota_granted",
            user_id,
            operator_id=operator_id,
            amount=amount,
            extra_quota=record.extra_quota,
        )
        return record

    async def describe(self, operator_id: int, user_id: int) -> UsageRecord:
        self._require_operator(operator_id)
        return await self.usage_store.get(user_id)
