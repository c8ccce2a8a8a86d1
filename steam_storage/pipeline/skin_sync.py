"""
Steam Storage — Skin Catalog Sync (the crawler)

Walks the paged market listing of every tracked game. For each page:
1. insert every item not yet in the catalog (case-insensitive hash match)
2. append one price point per item, quoted in BASE currency
3. commit the page as one transaction, advance the offset, sleep 10-15s

A failed page is never skipped: the offset stays where it is, the page size
shrinks to a random smaller value and the crawler sleeps 100-150s before
retrying. A crawl only ends when pagination is exhausted or the task is
cancelled.

After each stored page, paging continues while that page was full OR the
offset has not yet reached the upstream total. Both are needed because
total_count drifts while a multi-hour crawl is running. A failed page never
ends the crawl.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from steam_storage import storage
from steam_storage.config import settings
from steam_storage.errors import MissingReferenceData, PriceParseError
from steam_storage.models import Currency, Game
from steam_storage.models.base import utcnow
from steam_storage.pipeline.steam_market import SearchPage, SteamMarketClient
from steam_storage.utils.price import parse_price

logger = structlog.get_logger(__name__)


@dataclass
class PageResult:
    inserted: int = 0
    price_points: int = 0
    skipped_prices: int = 0


@dataclass
class GameSyncStats:
    game_id: int
    pages: int = 0
    failures: int = 0
    inserted: int = 0
    price_points: int = 0
    skipped_prices: int = 0
    offset: int = 0
    total_count: int = 0


class SkinCatalogSyncer:
    """
    Crawls the marketplace listing and feeds the skin catalog and price history.

    Usage:
        async with SteamMarketClient() as client:
            syncer = SkinCatalogSyncer(session, client)
            await syncer.sync_all()
    """

    def __init__(
        self,
        session: AsyncSession,
        client: SteamMarketClient,
        page_size: int | None = None,
        error_page_size: tuple[int, int] | None = None,
        delay: tuple[float, float] | None = None,
        error_delay: tuple[float, float] | None = None,
        rng: random.Random | None = None,
    ):
        self.session = session
        self.client = client
        self._page_size = page_size or settings.SKIN_SYNC_PAGE_SIZE
        self._error_page_size = error_page_size or (
            settings.SKIN_SYNC_ERROR_PAGE_SIZE_MIN,
            settings.SKIN_SYNC_ERROR_PAGE_SIZE_MAX,
        )
        self._delay = delay or (
            settings.SKIN_SYNC_DELAY_MIN_SECONDS,
            settings.SKIN_SYNC_DELAY_MAX_SECONDS,
        )
        self._error_delay = error_delay or (
            settings.SKIN_SYNC_ERROR_DELAY_MIN_SECONDS,
            settings.SKIN_SYNC_ERROR_DELAY_MAX_SECONDS,
        )
        self._rng = rng or random.Random()

    async def _store_page(
        self,
        game_id: int,
        mark: str,
        culture_info: str,
        page: SearchPage,
        now: datetime,
    ) -> PageResult:
        """Insert unseen skins and append price points for one page, atomically."""
        outcome = PageResult()
        try:
            known = await storage.find_skins_by_hashes(
                self.session, (item.hash_name for item in page.results)
            )

            for item in page.results:
                key = item.hash_name.lower()
                skin = known.get(key)
                if skin is None:
                    skin = await storage.insert_skin(
                        self.session,
                        game_id=game_id,
                        market_hash_name=item.hash_name,
                        title=item.name,
                        skin_icon_url=item.asset_description.icon_url,
                    )
                    known[key] = skin
                    outcome.inserted += 1

                try:
                    price = parse_price(item.sell_price_text, mark, culture_info)
                except PriceParseError as e:
                    logger.warning(
                        "skin_sync_price_unparsable",
                        game_id=game_id,
                        market_hash_name=item.hash_name,
                        raw=e.raw,
                    )
                    outcome.skipped_prices += 1
                    continue

                storage.append_skin_price_point(self.session, skin.id, price, now)
                outcome.price_points += 1

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return outcome

    async def sync_game(self, game: Game, currency: Currency) -> GameSyncStats:
        """
        Crawl every page of one game's market listing.

        Args:
            game: Game to crawl.
            currency: BASE currency; prices are requested and parsed in it.

        Returns:
            GameSyncStats for the finished crawl.
        """
        # Plain values: a rolled-back page expires every loaded instance
        game_id, steam_game_id = game.id, game.steam_game_id
        steam_currency_id, mark, culture_info = (
            currency.steam_currency_id,
            currency.mark,
            currency.culture_info,
        )

        stats = GameSyncStats(game_id=game_id)
        started = utcnow()

        page_size = self._page_size
        start = 0
        total_count = 0

        logger.info("skin_sync_game_start", game_id=game_id, steam_game_id=steam_game_id)

        # Only a successful page decides whether there is more to crawl
        while True:
            try:
                page = await self.client.search_skins(
                    steam_game_id,
                    count=page_size,
                    start=start,
                    steam_currency_id=steam_currency_id,
                )
                outcome = await self._store_page(game_id, mark, culture_info, page, utcnow())
            except Exception as e:
                stats.failures += 1
                page_size = self._rng.randint(*self._error_page_size)
                wait = self._rng.uniform(*self._error_delay)
                logger.error(
                    "skin_sync_page_failed",
                    game_id=game_id,
                    start=start,
                    total_count=total_count,
                    next_page_size=page_size,
                    retry_in_seconds=round(wait, 1),
                    error=str(e),
                    error_type=type(e).__name__,
                    elapsed_seconds=round((utcnow() - started).total_seconds(), 1),
                )
                await asyncio.sleep(wait)
                continue

            result_count = len(page.results)
            total_count = page.total_count
            start += result_count
            stats.pages += 1
            stats.inserted += outcome.inserted
            stats.price_points += outcome.price_points
            stats.skipped_prices += outcome.skipped_prices

            logger.info(
                "skin_sync_page_stored",
                game_id=game_id,
                loaded=start,
                total_count=total_count,
                inserted=outcome.inserted,
                price_points=outcome.price_points,
            )

            if result_count == 0:
                # Nothing left to advance over, even if total_count says otherwise
                break

            # A full page is judged against the size that was requested, which
            # is the shrunken one right after a failure
            page_was_full = result_count == page_size
            page_size = self._page_size

            if not (page_was_full or start < total_count):
                break
            await asyncio.sleep(self._rng.uniform(*self._delay))

        stats.offset = start
        stats.total_count = total_count
        logger.info(
            "skin_sync_game_complete",
            game_id=game_id,
            pages=stats.pages,
            failures=stats.failures,
            inserted=stats.inserted,
            price_points=stats.price_points,
            elapsed_seconds=round((utcnow() - started).total_seconds(), 1),
        )
        return stats

    async def sync_all(self) -> list[GameSyncStats]:
        """Crawl every tracked game, one after another."""
        if await storage.find_currency_by_id(self.session, settings.BASE_CURRENCY_ID) is None:
            raise MissingReferenceData(f"Base currency id={settings.BASE_CURRENCY_ID} is missing")

        game_ids = [game.id for game in await storage.list_games(self.session)]
        if not game_ids:
            raise MissingReferenceData("No games are tracked")

        results = []
        for game_id in game_ids:
            # Re-read each time: instances expire when a page is rolled back
            currency = await storage.find_currency_by_id(self.session, settings.BASE_CURRENCY_ID)
            game = await storage.find_game_by_id(self.session, game_id)
            if currency is None or game is None:
                raise MissingReferenceData(f"Reference data vanished while crawling game id={game_id}")
            results.append(await self.sync_game(game, currency))
        return results
