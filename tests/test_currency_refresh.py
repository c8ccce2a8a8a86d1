"""
Tests for the currency refresh (steam_storage/pipeline/currency_refresh.py).

The marketplace is replaced by an in-memory fake keyed by Steam currency id;
the database is the shared aiosqlite fixture.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import add_skin
from steam_storage.errors import AlreadyDone, MissingReferenceData, NotFound
from steam_storage.models import Currency, CurrencyRatePoint, Game, Skin
from steam_storage.pipeline.currency_refresh import refresh_currency_rates
from steam_storage.pipeline.steam_market import AssetDescription, SkinResult

REFERENCE_ITEM = "Revolution Case"


class FakeMarket:
    """Stands in for SteamMarketClient: one popular item, one price per currency."""

    def __init__(self, prices: dict[int, str | Exception], popular: str | None = REFERENCE_ITEM):
        self.prices = prices
        self.popular = popular
        self.price_requests: list[int] = []

    async def fetch_most_popular_skin(self, steam_game_id: int) -> SkinResult:
        if self.popular is None:
            raise NotFound(f"No marketplace items for app {steam_game_id}")
        return SkinResult(
            name=self.popular,
            hash_name=self.popular,
            asset_description=AssetDescription(
                name=self.popular, market_hash_name=self.popular, icon_url="case-icon"
            ),
        )

    async def fetch_price_overview(
        self, steam_game_id: int, market_hash_name: str, steam_currency_id: int
    ) -> str:
        self.price_requests.append(steam_currency_id)
        price = self.prices[steam_currency_id]
        if isinstance(price, Exception):
            raise price
        return price


async def rates_by_currency(session) -> dict[int, list[Decimal]]:
    result = await session.execute(select(CurrencyRatePoint).order_by(CurrencyRatePoint.id))
    rates: dict[int, list[Decimal]] = {}
    for point in result.scalars().all():
        rates.setdefault(point.currency_id, []).append(point.rate)
    return rates


# ---------------------------------------------------------------------------
# Test 1: $10.00 vs 9.00€ -> EUR rate 0.9
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_refresh_records_rate_per_currency(db_session, reference_data, now) -> None:
    market = FakeMarket({1: "$10.00", 3: "9.00€"})

    recorded = await refresh_currency_rates(db_session, market, now=now, request_delay=0)

    assert recorded == 2
    rates = await rates_by_currency(db_session)
    assert rates[reference_data.usd.id] == [Decimal("1")]
    assert rates[reference_data.eur.id] == [Decimal("0.9")]


@pytest.mark.asyncio
async def test_base_currency_is_not_requested_twice(db_session, reference_data, now) -> None:
    """BASE is priced once for the reference; its own rate is 1 without a lookup."""
    market = FakeMarket({1: "$10.00", 3: "9.00€"})

    await refresh_currency_rates(db_session, market, now=now, request_delay=0)

    assert market.price_requests == [1, 3]


# ---------------------------------------------------------------------------
# Test 2: the reference item is registered in the catalog
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reference_item_added_to_catalog(db_session, reference_data, now) -> None:
    market = FakeMarket({1: "$10.00", 3: "9.00€"})

    await refresh_currency_rates(db_session, market, now=now, request_delay=0)

    skin = (await db_session.execute(select(Skin))).scalar_one()
    assert skin.market_hash_name == REFERENCE_ITEM
    assert skin.game_id == reference_data.game.id
    assert skin.skin_icon_url == "case-icon"


@pytest.mark.asyncio
async def test_known_reference_item_not_duplicated(db_session, reference_data, now) -> None:
    await add_skin(db_session, reference_data.game, "REVOLUTION CASE")
    market = FakeMarket({1: "$10.00", 3: "9.00€"})

    await refresh_currency_rates(db_session, market, now=now, request_delay=0)

    count = (await db_session.execute(select(func.count(Skin.id)))).scalar_one()
    assert count == 1


# ---------------------------------------------------------------------------
# Test 3: a failing currency is skipped, the rest are recorded
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_failed_currency_is_skipped(db_session, reference_data, now) -> None:
    gbp = Currency(id=3, steam_currency_id=2, title="GBP", mark="£", culture_info="en-GB")
    rub = Currency(id=4, steam_currency_id=5, title="RUB", mark="pуб.", culture_info="ru-RU")
    db_session.add_all([gbp, rub])
    await db_session.commit()

    market = FakeMarket({
        1: "$10.00",
        2: NotFound("no listings"),
        3: "9.00€",
        5: "pуб.",
    })

    recorded = await refresh_currency_rates(db_session, market, now=now, request_delay=0)

    assert recorded == 2
    rates = await rates_by_currency(db_session)
    assert set(rates) == {reference_data.usd.id, reference_data.eur.id}


@pytest.mark.asyncio
async def test_ruble_rate_parsed_with_its_culture(db_session, reference_data, now) -> None:
    rub = Currency(id=3, steam_currency_id=5, title="RUB", mark="pуб.", culture_info="ru-RU")
    db_session.add(rub)
    await db_session.commit()

    market = FakeMarket({1: "$10.00", 3: "9.00€", 5: "1 000,50 pуб."})

    await refresh_currency_rates(db_session, market, now=now, request_delay=0)

    rates = await rates_by_currency(db_session)
    assert rates[rub.id] == [Decimal("100.05")]


# ---------------------------------------------------------------------------
# Test 4: already refreshed today
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_second_run_same_day_is_already_done(db_session, reference_data, now) -> None:
    market = FakeMarket({1: "$10.00", 3: "9.00€"})
    await refresh_currency_rates(db_session, market, now=now, request_delay=0)

    with pytest.raises(AlreadyDone):
        await refresh_currency_rates(
            db_session, market, now=now + timedelta(hours=1), request_delay=0
        )

    rates = await rates_by_currency(db_session)
    assert sum(len(points) for points in rates.values()) == 2


@pytest.mark.asyncio
async def test_next_day_appends_new_points(db_session, reference_data, now) -> None:
    await refresh_currency_rates(
        db_session, FakeMarket({1: "$10.00", 3: "9.00€"}), now=now, request_delay=0
    )
    await refresh_currency_rates(
        db_session, FakeMarket({1: "$10.00", 3: "8.50€"}), now=now + timedelta(days=1), request_delay=0
    )

    rates = await rates_by_currency(db_session)
    assert rates[reference_data.eur.id] == [Decimal("0.9"), Decimal("0.85")]


@pytest.mark.asyncio
async def test_retry_fills_only_missing_currencies(db_session, reference_data, now) -> None:
    """A retry after a partial pass only looks up currencies without a rate today."""
    first = FakeMarket({1: "$10.00", 3: NotFound("no listings")})
    assert await refresh_currency_rates(db_session, first, now=now, request_delay=0) == 1

    second = FakeMarket({1: "$10.00", 3: "9.00€"})
    assert await refresh_currency_rates(db_session, second, now=now, request_delay=0) == 1

    assert second.price_requests == [1, 3]
    rates = await rates_by_currency(db_session)
    assert rates[reference_data.usd.id] == [Decimal("1")]
    assert rates[reference_data.eur.id] == [Decimal("0.9")]


# ---------------------------------------------------------------------------
# Test 5: missing reference data is fatal for the run
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_missing_base_currency(db_session, now) -> None:
    db_session.add_all([
        Currency(id=2, steam_currency_id=3, title="EUR", mark="€", culture_info="en-IE"),
        Game(id=1, steam_game_id=730, title="Counter-Strike 2"),
    ])
    await db_session.commit()

    with pytest.raises(MissingReferenceData):
        await refresh_currency_rates(db_session, FakeMarket({3: "9.00€"}), now=now, request_delay=0)


@pytest.mark.asyncio
async def test_no_games(db_session, now) -> None:
    db_session.add(Currency(id=1, steam_currency_id=1, title="USD", mark="$", culture_info="en-US"))
    await db_session.commit()

    with pytest.raises(MissingReferenceData):
        await refresh_currency_rates(db_session, FakeMarket({1: "$10.00"}), now=now, request_delay=0)


@pytest.mark.asyncio
async def test_no_reference_item(db_session, reference_data, now) -> None:
    market = FakeMarket({1: "$10.00", 3: "9.00€"}, popular=None)

    with pytest.raises(MissingReferenceData):
        await refresh_currency_rates(db_session, market, now=now, request_delay=0)


@pytest.mark.asyncio
async def test_base_price_unavailable_writes_nothing(db_session, reference_data, now) -> None:
    market = FakeMarket({1: NotFound("no listings"), 3: "9.00€"})

    with pytest.raises(MissingReferenceData):
        await refresh_currency_rates(db_session, market, now=now, request_delay=0)

    assert await rates_by_currency(db_session) == {}
