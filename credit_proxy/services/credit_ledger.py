"""
Credit ledger - the only component that reads or writes balances.

Tables:
- credit_balance: one row per user per billing period
- ai_usage: append-only usage records

Balance updates are a read followed by a write. Updates for the same user
are serialized with a per-user lock so concurrent requests in this process
never lose an increment.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from credit_proxy.config import Settings
from credit_proxy.providers.pricing import calculate_cost
from credit_proxy.services.store_client import BalanceStoreClient

logger = logging.getLogger(__name__)

BALANCE_TABLE = "credit_balance"
USAGE_TABLE = "ai_usage"


@dataclass(frozen=True)
class CreditStatus:
    """Result of a quota check."""
    remaining_cents: int
    exceeded: bool
    # False when the store could not be read and the configured policy decided
    verified: bool = True


@dataclass(frozen=True)
class UsageOutcome:
    """Result of logging usage, including the best-effort side effects."""
    cost_cents: int
    record_logged: bool
    balance_updated: bool
    new_total_cents: Optional[int] = None


def _read_int(row: dict, key: str) -> Optional[int]:
    value = row.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


class CreditLedger:
    """Reads remaining credit and records usage against the balance store."""

    def __init__(self, settings: Settings, store: BalanceStoreClient):
        self.settings = settings
        self.store = store
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        return lock

    def _unverified(self, user_id: str, reason: str) -> CreditStatus:
        """Apply the store-failure policy when the balance cannot be read."""
        if self.settings.fail_open_on_store_error:
            logger.warning(
                f"Credit check unverified for user {user_id} ({reason}) - allowing request",
                extra={"user_id": user_id},
            )
            return CreditStatus(self.settings.cap_cents, exceeded=False, verified=False)

        logger.warning(
            f"Credit check unverified for user {user_id} ({reason}) - blocking request",
            extra={"user_id": user_id},
        )
        return CreditStatus(0, exceeded=True, verified=False)

    async def create_balance(self, user_id: str) -> bool:
        """Create a fresh balance row for the current period."""
        result = await self.store.insert(BALANCE_TABLE, {
            "user_id": user_id,
            "period_start": datetime.now(timezone.utc).isoformat(),
            "total_cost_cents": 0,
            "cap_cents": self.settings.cap_cents,
        })
        if result is None:
            logger.error(f"Failed to create credit balance for user {user_id}")
            return False
        logger.info(f"Created credit balance for user {user_id}", extra={"user_id": user_id})
        return True

    async def check_credit(self, user_id: Optional[str] = None) -> CreditStatus:
        """
        Check remaining credit for a user.

        The first check for a user creates their balance row and always
        succeeds. A failed read of the store follows the fail-open setting.
        """
        user_id = user_id or self.settings.user_id

        rows = await self.store.select(
            BALANCE_TABLE, {"user_id": user_id}, "total_cost_cents,cap_cents"
        )
        if rows is None or not isinstance(rows, list):
            return self._unverified(user_id, "balance read failed")

        if not rows:
            # No record yet - create one
            await self.create_balance(user_id)
            return CreditStatus(self.settings.cap_cents, exceeded=False)

        balance = rows[0] if isinstance(rows[0], dict) else {}
        total = _read_int(balance, "total_cost_cents")
        cap = _read_int(balance, "cap_cents")
        if total is None or cap is None:
            return self._unverified(user_id, "malformed balance row")

        remaining = cap - total
        return CreditStatus(remaining, exceeded=remaining <= 0)

    async def _insert_usage_record(
        self,
        deployment_id: str,
        user_id: str,
        tokens_in: int,
        tokens_out: int,
        cost_cents: int,
        model: str,
    ) -> bool:
        result = await self.store.insert(USAGE_TABLE, {
            "deployment_id": deployment_id,
            "user_id": user_id,
            "tokens_in": tokens_in,
            "tokens_out": tokens_out,
            "cost_cents": cost_cents,
            "model": model,
        })
        if result is None:
            logger.error(
                f"Usage log failed for user {user_id}",
                extra={"user_id": user_id, "cost_cents": cost_cents},
            )
            return False
        return True

    async def _add_to_balance(self, user_id: str, cost_cents: int) -> tuple[bool, Optional[int]]:
        """Add cost to the user's running total. Returns (updated, new_total)."""
        async with self._lock_for(user_id):
            rows = await self.store.select(
                BALANCE_TABLE, {"user_id": user_id}, "total_cost_cents"
            )
            if rows is None or not isinstance(rows, list):
                logger.error(f"Balance update failed for user {user_id}: read failed")
                return False, None
            if not rows or not isinstance(rows[0], dict):
                logger.warning(f"Balance update skipped for user {user_id}: no balance row")
                return False, None

            current = _read_int(rows[0], "total_cost_cents")
            if current is None:
                logger.error(f"Balance update failed for user {user_id}: malformed balance row")
                return False, None

            new_total = current + cost_cents
            result = await self.store.update(
                BALANCE_TABLE, {"user_id": user_id}, {"total_cost_cents": new_total}
            )
            if result is None:
                logger.error(f"Balance update failed for user {user_id}: write failed")
                return False, None
            return True, new_total

    async def log_usage(
        self,
        deployment_id: str,
        tokens_in: int,
        tokens_out: int,
        model: str,
        user_id: Optional[str] = None,
    ) -> UsageOutcome:
        """
        Record a usage event and add its cost to the user's balance.

        The usage record insert is best-effort and runs alongside the
        balance update; neither failure aborts the other.
        """
        user_id = user_id or self.settings.user_id
        cost_cents = calculate_cost(model, tokens_in, tokens_out)

        record_logged, (balance_updated, new_total) = await asyncio.gather(
            self._insert_usage_record(
                deployment_id, user_id, tokens_in, tokens_out, cost_cents, model
            ),
            self._add_to_balance(user_id, cost_cents),
        )

        return UsageOutcome(
            cost_cents=cost_cents,
            record_logged=record_logged,
            balance_updated=balance_updated,
            new_total_cents=new_total,
        )
