"""
Steam Storage — Currency Refresh

Derives the exchange rate of every tracked currency against BASE from the
marketplace itself: the most actively traded item of the reference game is
priced in BASE and then in each currency, and rate = price / base_price.

Runs once per day. A currency whose lookup fails is skipped for this run;
only missing reference data (BASE currency, games, reference item or its
BASE price) fails the whole pass.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from steam_storage import storage
from steam_storage.config import settings
from steam_storage.errors import (
    AlreadyDone,
    MissingReferenceData,
    NotFound,
    UpstreamError,
)
from steam_storage.models import Game, Skin
from steam_storage.models.base import utcnow
from steam_storage.pipeline.steam_market import SteamMarketClient
from steam_storage.utils.forex import exchange_rate
from steam_storage.utils.price import parse_price

logger = structlog.get_logger(__name__)

BASE_RATE = Decimal("1")


async def _resolve_reference_game(session: AsyncSession) -> Game:
    if settings.REFERENCE_GAME_ID is not None:
        game = await storage.find_game_by_id(session, settings.REFERENCE_GAME_ID)
        if game is not None:
            return game
        logger.warning(
            "currency_refresh_reference_game_missing",
            reference_game_id=settings.REFERENCE_GAME_ID,
        )

    games = await storage.list_games(session)
    if not games:
        raise MissingReferenceData("No games are tracked; cannot pick a reference item")
    return games[0]


async def _resolve_reference_skin(
    session: AsyncSession, client: SteamMarketClient, game: Game
) -> Skin:
    """The game's most popular item, registered in the catalog if new."""
    try:
        result = await client.fetch_most_popular_skin(game.steam_game_id)
    except NotFound as e:
        raise MissingReferenceData(str(e)) from e

    hash_name = result.asset_description.market_hash_name or result.hash_name
    skin = await storage.find_skin_by_hash(session, hash_name)
    if skin is None:
        skin = await storage.insert_skin(
            session,
            game_id=game.id,
            market_hash_name=hash_name,
            title=result.asset_description.name or result.name,
            skin_icon_url=result.asset_description.icon_url,
        )
        await session.commit()
        logger.info("currency_refresh_reference_skin_added", skin_id=skin.id, market_hash_name=hash_name)
    return skin


async def refresh_currency_rates(
    session: AsyncSession,
    client: SteamMarketClient,
    now: datetime | None = None,
    request_delay: float | None = None,
) -> int:
    """
    Append today's CurrencyRatePoint for every tracked currency.

    Args:
        session: Async database session.
        client: Open SteamMarketClient.
        now: Timestamp of the new points (defaults to current UTC time).
        request_delay: Seconds between currency lookups.

    Returns:
        Number of rate points recorded.

    Raises:
        AlreadyDone: Every currency already has a rate point today.
        MissingReferenceData: No BASE currency, no games or no reference item.
        UpstreamError: The reference item's BASE price could not be fetched.
    """
    now = now or utcnow()
    delay = settings.CURRENCY_REQUEST_DELAY_SECONDS if request_delay is None else request_delay
    started = utcnow()

    base_currency = await storage.find_currency_by_id(session, settings.BASE_CURRENCY_ID)
    if base_currency is None:
        raise MissingReferenceData(f"Base currency id={settings.BASE_CURRENCY_ID} is missing")

    points_today = await storage.count_currency_rate_points_for_today(session, now)
    if points_today >= await storage.count_currencies(session):
        raise AlreadyDone("Currency rates were already refreshed today")

    game = await _resolve_reference_game(session)
    skin = await _resolve_reference_skin(session, client, game)

    try:
        base_text = await client.fetch_price_overview(
            game.steam_game_id, skin.market_hash_name, base_currency.steam_currency_id
        )
    except NotFound as e:
        raise MissingReferenceData(f"Reference item has no BASE price: {e}") from e
    base_price = parse_price(base_text, base_currency.mark, base_currency.culture_info)
    if base_price <= 0:
        raise MissingReferenceData(f"Reference item BASE price is {base_price}")

    logger.info(
        "currency_refresh_reference_price",
        game_id=game.id,
        market_hash_name=skin.market_hash_name,
        base_price=str(base_price),
    )

    already_refreshed = await storage.currency_ids_with_rate_today(session, now)
    recorded = 0
    first_request = True

    try:
        for currency in await storage.list_currencies(session):
            if currency.id in already_refreshed:
                continue

            if currency.id == base_currency.id:
                storage.append_currency_rate_point(session, currency.id, BASE_RATE, now)
                recorded += 1
                continue

            if not first_request and delay > 0:
                await asyncio.sleep(delay)
            first_request = False

            try:
                price_text = await client.fetch_price_overview(
                    game.steam_game_id, skin.market_hash_name, currency.steam_currency_id
                )
                price = parse_price(price_text, currency.mark, currency.culture_info)
            except UpstreamError as e:
                logger.warning(
                    "currency_refresh_currency_skipped",
                    currency_id=currency.id,
                    currency=currency.title,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            rate = exchange_rate(price, base_price)
            storage.append_currency_rate_point(session, currency.id, rate, now)
            recorded += 1

            logger.debug(
                "currency_refresh_rate",
                currency_id=currency.id,
                currency=currency.title,
                price=str(price),
                rate=str(rate),
            )

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "currency_refresh_complete",
        recorded=recorded,
        elapsed_seconds=round((utcnow() - started).total_seconds(), 2),
    )
    return recorded
