"""
Steam Storage — Persistence interface used by the sync pipeline

Thin async functions over an AsyncSession. Nothing here commits: the
calling service owns the transaction boundary and commits (or rolls back)
once per batch.

History tables (skin_price_history, currency_rate_history,
active_group_valuation_history) are only ever appended to.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from steam_storage.models import (
    Active,
    ActiveGroup,
    ActiveGroupValuationPoint,
    Currency,
    CurrencyRatePoint,
    Game,
    Inventory,
    Skin,
    SkinPricePoint,
    User,
)
from steam_storage.models.base import utcnow
from steam_storage.utils.forex import DEFAULT_RATE

logger = structlog.get_logger(__name__)


def day_bounds(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Return [start, end) of the UTC calendar day containing `now`."""
    now = now or utcnow()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------


async def list_games(session: AsyncSession) -> list[Game]:
    result = await session.execute(select(Game).order_by(Game.id))
    return list(result.scalars().all())


async def find_game_by_id(session: AsyncSession, game_id: int) -> Game | None:
    return await session.get(Game, game_id)


# ---------------------------------------------------------------------------
# Currencies
# ---------------------------------------------------------------------------


async def find_currency_by_id(session: AsyncSession, currency_id: int) -> Currency | None:
    return await session.get(Currency, currency_id)


async def list_currencies(session: AsyncSession) -> list[Currency]:
    result = await session.execute(select(Currency).order_by(Currency.id))
    return list(result.scalars().all())


def append_currency_rate_point(
    session: AsyncSession,
    currency_id: int,
    rate: Decimal,
    recorded_at: datetime | None = None,
) -> CurrencyRatePoint:
    point = CurrencyRatePoint(
        currency_id=currency_id,
        rate=rate,
        recorded_at=recorded_at or utcnow(),
    )
    session.add(point)
    return point


async def count_currency_rate_points_for_today(
    session: AsyncSession, now: datetime | None = None
) -> int:
    start, end = day_bounds(now)
    result = await session.execute(
        select(func.count(CurrencyRatePoint.id)).where(
            CurrencyRatePoint.recorded_at >= start,
            CurrencyRatePoint.recorded_at < end,
        )
    )
    return int(result.scalar_one())


async def count_currencies(session: AsyncSession) -> int:
    result = await session.execute(select(func.count(Currency.id)))
    return int(result.scalar_one())


async def currency_ids_with_rate_today(
    session: AsyncSession, now: datetime | None = None
) -> set[int]:
    start, end = day_bounds(now)
    result = await session.execute(
        select(CurrencyRatePoint.currency_id)
        .where(CurrencyRatePoint.recorded_at >= start, CurrencyRatePoint.recorded_at < end)
        .distinct()
    )
    return set(result.scalars().all())


async def latest_currency_rates(
    session: AsyncSession, currency_ids: Iterable[int]
) -> dict[int, Decimal]:
    """Latest rate per currency id. Currencies without history are absent."""
    ids = set(currency_ids)
    if not ids:
        return {}

    latest = (
        select(
            CurrencyRatePoint.currency_id,
            func.max(CurrencyRatePoint.recorded_at).label("recorded_at"),
        )
        .where(CurrencyRatePoint.currency_id.in_(ids))
        .group_by(CurrencyRatePoint.currency_id)
        .subquery()
    )
    result = await session.execute(
        select(CurrencyRatePoint.currency_id, CurrencyRatePoint.rate, CurrencyRatePoint.id)
        .join(
            latest,
            (CurrencyRatePoint.currency_id == latest.c.currency_id)
            & (CurrencyRatePoint.recorded_at == latest.c.recorded_at),
        )
        .order_by(CurrencyRatePoint.id)
    )
    # Ties on recorded_at resolve to the last inserted row
    return {currency_id: rate for currency_id, rate, _ in result.all()}


async def get_currency_exchange_rate(session: AsyncSession, currency_id: int) -> Decimal:
    """Latest rate of a currency against BASE, 1.0 when it has no history."""
    rates = await latest_currency_rates(session, [currency_id])
    return rates.get(currency_id, DEFAULT_RATE)


# ---------------------------------------------------------------------------
# Skins
# ---------------------------------------------------------------------------


async def find_skin_by_hash(session: AsyncSession, market_hash_name: str) -> Skin | None:
    """Case-insensitive lookup by market hash name."""
    result = await session.execute(
        select(Skin).where(func.lower(Skin.market_hash_name) == market_hash_name.lower())
    )
    return result.scalars().first()


async def find_skins_by_hashes(
    session: AsyncSession, market_hash_names: Iterable[str]
) -> dict[str, Skin]:
    """Batch case-insensitive lookup, keyed by lower-cased hash name."""
    lowered = {name.lower() for name in market_hash_names}
    if not lowered:
        return {}
    result = await session.execute(
        select(Skin).where(func.lower(Skin.market_hash_name).in_(lowered))
    )
    return {skin.market_hash_name.lower(): skin for skin in result.scalars().all()}


async def insert_skin(
    session: AsyncSession,
    game_id: int,
    market_hash_name: str,
    title: str,
    skin_icon_url: str = "",
) -> Skin:
    """Add a skin and flush so its id is available within the transaction."""
    skin = Skin(
        game_id=game_id,
        market_hash_name=market_hash_name,
        title=title,
        skin_icon_url=skin_icon_url,
    )
    session.add(skin)
    await session.flush()
    logger.debug("storage_skin_inserted", skin_id=skin.id, game_id=game_id, market_hash_name=market_hash_name)
    return skin


def append_skin_price_point(
    session: AsyncSession,
    skin_id: int,
    price: Decimal,
    recorded_at: datetime | None = None,
) -> SkinPricePoint:
    point = SkinPricePoint(skin_id=skin_id, price=price, recorded_at=recorded_at or utcnow())
    session.add(point)
    return point


async def latest_skin_prices(
    session: AsyncSession, skin_ids: Iterable[int]
) -> dict[int, Decimal]:
    """Current price (latest point) per skin id. Skins without history are absent."""
    ids = set(skin_ids)
    if not ids:
        return {}

    latest = (
        select(
            SkinPricePoint.skin_id,
            func.max(SkinPricePoint.recorded_at).label("recorded_at"),
        )
        .where(SkinPricePoint.skin_id.in_(ids))
        .group_by(SkinPricePoint.skin_id)
        .subquery()
    )
    result = await session.execute(
        select(SkinPricePoint.skin_id, SkinPricePoint.price, SkinPricePoint.id)
        .join(
            latest,
            (SkinPricePoint.skin_id == latest.c.skin_id)
            & (SkinPricePoint.recorded_at == latest.c.recorded_at),
        )
        .order_by(SkinPricePoint.id)
    )
    return {skin_id: price for skin_id, price, _ in result.all()}


# ---------------------------------------------------------------------------
# Active groups
# ---------------------------------------------------------------------------


async def list_active_groups(session: AsyncSession) -> list[ActiveGroup]:
    """All groups with their actives and owner (with chosen currency) loaded."""
    result = await session.execute(
        select(ActiveGroup)
        .options(
            selectinload(ActiveGroup.actives).selectinload(Active.skin),
            selectinload(ActiveGroup.user).selectinload(User.currency),
        )
        .order_by(ActiveGroup.id)
    )
    return list(result.scalars().all())


async def count_active_groups(session: AsyncSession) -> int:
    result = await session.execute(select(func.count(ActiveGroup.id)))
    return int(result.scalar_one())


async def count_group_valuation_points_for_today(
    session: AsyncSession, now: datetime | None = None
) -> int:
    start, end = day_bounds(now)
    result = await session.execute(
        select(func.count(ActiveGroupValuationPoint.id)).where(
            ActiveGroupValuationPoint.recorded_at >= start,
            ActiveGroupValuationPoint.recorded_at < end,
        )
    )
    return int(result.scalar_one())


async def group_ids_with_valuation_today(
    session: AsyncSession, now: datetime | None = None
) -> set[int]:
    start, end = day_bounds(now)
    result = await session.execute(
        select(ActiveGroupValuationPoint.group_id)
        .where(
            ActiveGroupValuationPoint.recorded_at >= start,
            ActiveGroupValuationPoint.recorded_at < end,
        )
        .distinct()
    )
    return set(result.scalars().all())


def append_group_valuation_point(
    session: AsyncSession,
    group_id: int,
    total_sum: Decimal,
    recorded_at: datetime | None = None,
) -> ActiveGroupValuationPoint:
    point = ActiveGroupValuationPoint(
        group_id=group_id,
        total_sum=total_sum,
        recorded_at=recorded_at or utcnow(),
    )
    session.add(point)
    return point


# ---------------------------------------------------------------------------
# Users & inventory
# ---------------------------------------------------------------------------


async def find_user_by_id(session: AsyncSession, user_id: int) -> User | None:
    return await session.get(User, user_id)


async def list_user_inventory_for_game(
    session: AsyncSession, user_id: int, game_id: int
) -> list[Inventory]:
    result = await session.execute(
        select(Inventory)
        .join(Skin, Inventory.skin_id == Skin.id)
        .where(Inventory.user_id == user_id, Skin.game_id == game_id)
        .options(selectinload(Inventory.skin))
    )
    return list(result.scalars().all())


async def delete_user_inventory_for_game(
    session: AsyncSession, user_id: int, game_id: int
) -> int:
    """Delete a user's inventory rows for one game and flush the deletes."""
    rows = await list_user_inventory_for_game(session, user_id, game_id)
    for row in rows:
        await session.delete(row)
    await session.flush()
    return len(rows)
