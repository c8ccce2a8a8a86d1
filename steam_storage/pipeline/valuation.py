"""
Steam Storage — Group Valuation Rollup

Once a day, every ActiveGroup gets a new ActiveGroupValuationPoint:

    total = sum(latest price of active.skin * active.count) * owner's rate

Prices are stored in BASE currency; the owner's currency rate is the latest
CurrencyRatePoint, or 1.0 when that currency has no history yet. Skins that
have never been priced contribute nothing.

Schedule this after the currency refresh and catalog sync of the same day,
otherwise the totals are computed from yesterday's data.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from steam_storage import storage
from steam_storage.errors import AlreadyDone
from steam_storage.models import ActiveGroup
from steam_storage.models.base import utcnow
from steam_storage.utils.forex import convert_from_base

logger = structlog.get_logger(__name__)


def group_base_value(group: ActiveGroup, prices: dict[int, Decimal]) -> Decimal:
    """Value of a group in BASE currency from the given skin prices."""
    total = Decimal("0")
    for active in group.actives:
        price = prices.get(active.skin_id)
        if price is None:
            continue
        total += price * active.count
    return total


async def refresh_group_valuations(session: AsyncSession, now: datetime | None = None) -> int:
    """
    Append today's valuation point for every active group.

    Args:
        session: Async database session.
        now: Timestamp of the new points (defaults to current UTC time).

    Returns:
        Number of valuation points recorded.

    Raises:
        AlreadyDone: Every group already has a valuation point today.
    """
    now = now or utcnow()
    started = utcnow()

    points_today = await storage.count_group_valuation_points_for_today(session, now)
    groups_total = await storage.count_active_groups(session)
    if points_today >= groups_total:
        raise AlreadyDone(
            f"Group valuations already recorded today ({points_today}/{groups_total})"
        )

    groups = await storage.list_active_groups(session)
    already_valued = await storage.group_ids_with_valuation_today(session, now)

    prices = await storage.latest_skin_prices(
        session, (active.skin_id for group in groups for active in group.actives)
    )
    rates = await storage.latest_currency_rates(
        session, (group.user.currency_id for group in groups)
    )

    recorded = 0
    try:
        for group in groups:
            if group.id in already_valued:
                continue

            base_value = group_base_value(group, prices)
            total = convert_from_base(base_value, rates.get(group.user.currency_id))
            storage.append_group_valuation_point(session, group.id, total, now)
            recorded += 1

            logger.debug(
                "group_valuation_point",
                group_id=group.id,
                currency_id=group.user.currency_id,
                base_value=str(base_value),
                total_sum=str(total),
            )

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "group_valuation_complete",
        recorded=recorded,
        skipped=len(already_valued),
        elapsed_seconds=round((utcnow() - started).total_seconds(), 2),
    )
    return recorded
