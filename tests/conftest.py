"""
Steam Storage — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- In-memory aiosqlite database built from the models
- Seeded reference data (BASE currency, EUR, one game)
- A fixed "now" so day-bounded counts are deterministic
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from steam_storage.models import (
    Active,
    ActiveGroup,
    Base,
    Currency,
    Game,
    Skin,
    User,
)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)


STEAM_BASE_URL = "https://steamcommunity.test"


@dataclass
class ReferenceData:
    usd: Currency
    eur: Currency
    game: Game


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine():
    """
    In-memory SQLite engine with every table created.

    StaticPool keeps one connection so every session sees the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def reference_data(db_session: AsyncSession) -> ReferenceData:
    """BASE currency (USD, id=1), EUR and the CS2 game."""
    usd = Currency(id=1, steam_currency_id=1, title="USD", mark="$", culture_info="en-US")
    eur = Currency(id=2, steam_currency_id=3, title="EUR", mark="€", culture_info="en-IE")
    game = Game(id=1, steam_game_id=730, title="Counter-Strike 2")
    db_session.add_all([usd, eur, game])
    await db_session.commit()
    return ReferenceData(usd=usd, eur=eur, game=game)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


async def add_skin(session: AsyncSession, game: Game, market_hash_name: str) -> Skin:
    skin = Skin(game_id=game.id, market_hash_name=market_hash_name, title=market_hash_name)
    session.add(skin)
    await session.commit()
    return skin


async def add_user(session: AsyncSession, currency: Currency, steam_id: int = 76561198000000001) -> User:
    user = User(steam_id=steam_id, currency_id=currency.id)
    session.add(user)
    await session.commit()
    return user


async def add_group(
    session: AsyncSession,
    user: User,
    holdings: list[tuple[Skin, int]],
    title: str = "Main",
) -> ActiveGroup:
    group = ActiveGroup(user_id=user.id, title=title)
    session.add(group)
    await session.flush()
    for skin, count in holdings:
        session.add(
            Active(group_id=group.id, skin_id=skin.id, count=count, buy_price=Decimal("1.00"))
        )
    await session.commit()
    return group


# ---------------------------------------------------------------------------
# Utility Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    """Fixed midday UTC timestamp for tests."""
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
