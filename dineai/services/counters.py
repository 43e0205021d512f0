"""
Daily Order Counter

Issues the short, human-friendly order numbers staff read out loud
("order 17"). Numbers start at 1 for every restaurant on every local day
and are handed out by an atomic increment on a per-(restaurant, day) row,
so two concurrent placements can never receive the same number.

Numbers that were allocated but never used (the order failed afterwards)
leave gaps. Gaps are fine; duplicates are not.
"""

import logging
from datetime import date
from typing import Optional, Union

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from dineai.core.config import Settings, get_settings
from dineai.database import SessionFactory, run_in_transaction, utcnow
from dineai.models import DailyOrderCounter

logger = logging.getLogger(__name__)

DayKey = Union[date, str, None]


def _insert_for(session: AsyncSession):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"Order counter does not support the {dialect} dialect")


class OrderCounterAllocator:
    """
    Allocates daily order ids with one store transaction per call.

    The transaction inserts the (restaurant, day) row with value 0 when it
    does not exist yet and then increments it with UPDATE ... RETURNING. The
    row lock taken by the UPDATE serializes concurrent callers; lock and
    serialization failures are retried by run_in_transaction.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    def day_key(self, day: DayKey = None) -> str:
        if day is None:
            return self.settings.local_today().isoformat()
        if isinstance(day, date):
            return day.isoformat()
        return day

    async def next_order_id(self, restaurant_id: str, day: DayKey = None) -> int:
        """
        Return the next order number for the restaurant on the given day.

        Args:
            restaurant_id: Tenant
            day: Local date (defaults to today in the restaurant time zone)

        Raises:
            TransientStoreConflict: the increment kept conflicting
        """
        order_date = self.day_key(day)

        async def _increment(session: AsyncSession) -> int:
            return await self.increment(session, restaurant_id, order_date)

        order_id = await run_in_transaction(
            self.session_factory,
            _increment,
            label=f"order counter {restaurant_id}/{order_date}",
        )
        logger.info(f"Allocated order #{order_id} for {restaurant_id} on {order_date}")
        return order_id

    async def increment(
        self,
        session: AsyncSession,
        restaurant_id: str,
        order_date: str,
    ) -> int:
        """Create-if-absent then increment, inside the caller's transaction."""
        now = utcnow()
        insert = _insert_for(session)
        await session.execute(
            insert(DailyOrderCounter)
            .values(
                restaurant_id=restaurant_id,
                order_date=order_date,
                last_order_id=0,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["restaurant_id", "order_date"])
        )
        result = await session.execute(
            update(DailyOrderCounter)
            .where(
                DailyOrderCounter.restaurant_id == restaurant_id,
                DailyOrderCounter.order_date == order_date,
            )
            .values(
                last_order_id=DailyOrderCounter.last_order_id + 1,
                updated_at=now,
            )
            .returning(DailyOrderCounter.last_order_id)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one()

    async def peek(self, restaurant_id: str, day: DayKey = None) -> int:
        """Last number issued for the day, 0 when none has been issued yet."""
        order_date = self.day_key(day)
        async with self.session_factory() as session:
            value = await session.scalar(
                select(DailyOrderCounter.last_order_id).where(
                    DailyOrderCounter.restaurant_id == restaurant_id,
                    DailyOrderCounter.order_date == order_date,
                )
            )
        return value or 0
