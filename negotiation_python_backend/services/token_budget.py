"""
Shared daily LLM token budget.

Every LLM-consuming call site meters usage twice: once with the estimated
input size before the request and once with the output size afterwards.
The counter lives in the ``usage_daily`` table so all processes behind the
load balancer share it.

States per UTC day:
- open: no lock, or a lock whose time has passed (checked lazily)
- locked: a request pushed usage to or over the limit; ``locked_until`` is
  set ``lock_duration`` into the future and every call is rejected

The increment is a single conditional ``UPDATE ... RETURNING`` so concurrent
callers can never overwrite each other's usage.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from negotiation_python_backend.config import DAILY_TOKEN_LIMIT, TOKEN_LOCK_HOURS
from negotiation_python_backend.models import UsageDaily
from negotiation_python_backend.services.value_coercion import to_number

logger = logging.getLogger("negotiation_backend")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything stored here is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TokenLimitExceededError(Exception):
    """Raised when the daily token budget is exhausted. Maps to HTTP 429."""

    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, locked_until: Optional[datetime], message: Optional[str] = None):
        self.locked_until = _as_utc(locked_until)
        self.message = message or f"Daily token limit reached. Locked until {self.locked_until_iso}"
        super().__init__(self.message)

    @property
    def locked_until_iso(self) -> Optional[str]:
        return self.locked_until.isoformat() if self.locked_until else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "locked_until": self.locked_until_iso,
        }


@dataclass
class UsageSnapshot:
    day: date
    tokens_used: int
    daily_limit: int
    locked_until: Optional[datetime]
    is_locked: bool

    @property
    def remaining(self) -> int:
        return max(0, self.daily_limit - self.tokens_used)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day.isoformat(),
            "tokens_used": self.tokens_used,
            "daily_limit": self.daily_limit,
            "remaining": self.remaining,
            "locked_until": self.locked_until.isoformat() if self.locked_until else None,
            "is_locked": self.is_locked,
        }


def _insert_for(session: AsyncSession):
    """Dialect-specific INSERT supporting ON CONFLICT DO NOTHING."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Unsupported database dialect for usage ledger: {dialect}")
    return insert


class TokenBudgetGuard:
    """
    Enforces the shared daily token quota.

    Usage:
        guard = TokenBudgetGuard(AsyncSessionLocal)
        await guard.add_tokens_and_check(estimated_input_tokens)
        ...call the LLM...
        await guard.add_tokens_and_check(output_tokens)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        daily_limit: int = DAILY_TOKEN_LIMIT,
        lock_duration: timedelta = timedelta(hours=TOKEN_LOCK_HOURS),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.daily_limit = daily_limit
        self.lock_duration = lock_duration
        self.clock = clock

    async def add_tokens_and_check(self, amount: Any) -> int:
        """
        Add ``amount`` tokens to today's usage and return the new total.

        Raises:
            TokenLimitExceededError: today is locked (nothing is added), or
                this call brought usage to the limit (usage is persisted and
                the day is locked before raising).
        """
        tokens = max(0, int(to_number(amount, 0)))
        now = _as_utc(self.clock())
        day = now.date()

        async with self.session_factory() as session:
            async with session.begin():
                insert = _insert_for(session)
                await session.execute(
                    insert(UsageDaily)
                    .values(day=day, tokens_used=0)
                    .on_conflict_do_nothing(index_elements=["day"])
                )

                result = await session.execute(
                    update(UsageDaily)
                    .where(UsageDaily.day == day)
                    .where(or_(UsageDaily.locked_until.is_(None), UsageDaily.locked_until <= now))
                    .values(tokens_used=UsageDaily.tokens_used + tokens)
                    .returning(UsageDaily.tokens_used)
                    .execution_options(synchronize_session=False)
                )
                new_total = result.scalar_one_or_none()

                if new_total is None:
                    locked_until = (await session.execute(
                        select(UsageDaily.locked_until).where(UsageDaily.day == day)
                    )).scalar_one_or_none()
                    rejection = TokenLimitExceededError(locked_until)
                    logger.warning("[BUDGET] Rejected %d tokens, day %s locked until %s",
                                   tokens, day, rejection.locked_until_iso)
                    raise rejection

                locked_until = None
                if new_total >= self.daily_limit:
                    locked_until = now + self.lock_duration
                    await session.execute(
                        update(UsageDaily)
                        .where(UsageDaily.day == day)
                        .values(locked_until=locked_until)
                        .execution_options(synchronize_session=False)
                    )

        if locked_until is not None:
            logger.warning("[BUDGET] Daily limit %d reached (%d used), locked until %s",
                           self.daily_limit, new_total, locked_until.isoformat())
            raise TokenLimitExceededError(locked_until)

        logger.debug("[BUDGET] +%d tokens, %d/%d used on %s", tokens, new_total, self.daily_limit, day)
        return int(new_total)

    async def get_usage(self, day: Optional[date] = None) -> UsageSnapshot:
        """Read today's (or ``day``'s) usage without creating a row."""
        now = _as_utc(self.clock())
        day = day or now.date()

        async with self.session_factory() as session:
            row = (await session.execute(
                select(UsageDaily.tokens_used, UsageDaily.locked_until).where(UsageDaily.day == day)
            )).first()

        tokens_used = int(row.tokens_used or 0) if row else 0
        locked_until = _as_utc(row.locked_until) if row else None
        return UsageSnapshot(
            day=day,
            tokens_used=tokens_used,
            daily_limit=self.daily_limit,
            locked_until=locked_until,
            is_locked=locked_until is not None and now < locked_until,
        )
