"""
Tests for the inventory refresh (steam_storage/pipeline/inventory_sync.py).
"""

from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy import func, select

from conftest import add_skin, add_user
from steam_storage import storage
from steam_storage.errors import UpstreamUnavailable
from steam_storage.models import Game, Inventory, Skin
from steam_storage.pipeline.inventory_sync import refresh_inventory
from steam_storage.pipeline.steam_market import InventoryResponse


def description(classid: str, hash_name: str, tradable: int = 1, marketable: int = 1) -> dict[str, Any]:
    return {
        "appid": 730,
        "classid": classid,
        "instanceid": "0",
        "icon_url": f"icon-{classid}",
        "name": hash_name,
        "market_hash_name": hash_name,
        "tradable": tradable,
        "marketable": marketable,
    }


def asset(assetid: str, classid: str, amount: int = 1) -> dict[str, Any]:
    return {
        "appid": 730,
        "contextid": "2",
        "assetid": assetid,
        "classid": classid,
        "instanceid": "0",
        "amount": str(amount),
    }


class FakeInventory:
    def __init__(self, payload: dict[str, Any] | Exception):
        self.payload = payload
        self.requests: list[tuple[int, int]] = []

    async def fetch_inventory(self, steam_profile_id: int, steam_game_id: int, count: int | None = None) -> InventoryResponse:
        self.requests.append((steam_profile_id, steam_game_id))
        if isinstance(self.payload, Exception):
            raise self.payload
        return InventoryResponse.model_validate(self.payload)


STANDARD_PAYLOAD = {
    "success": 1,
    "total_inventory_count": 5,
    "assets": [
        asset("1", "10"),
        asset("2", "10"),
        asset("3", "20", amount=3),
        asset("4", "30"),
    ],
    "descriptions": [
        description("10", "AK-47 | Redline (Field-Tested)"),
        description("20", "Revolution Case"),
        # Service medal: cannot be sold or traded
        description("30", "5 Year Veteran Coin", tradable=0, marketable=0),
    ],
}


async def inventory_counts(session, user_id: int) -> dict[str, int]:
    rows = await session.execute(
        select(Skin.market_hash_name, Inventory.count)
        .join(Inventory, Inventory.skin_id == Skin.id)
        .where(Inventory.user_id == user_id)
    )
    return dict(rows.all())


# ---------------------------------------------------------------------------
# Test 1: inventory is built from the listing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_refresh_builds_inventory(db_session, reference_data) -> None:
    user = await add_user(db_session, reference_data.usd)
    client = FakeInventory(STANDARD_PAYLOAD)

    distinct = await refresh_inventory(db_session, client, user, reference_data.game)

    assert distinct == 2
    assert client.requests == [(user.steam_id, reference_data.game.steam_game_id)]
    assert await inventory_counts(db_session, user.id) == {
        "AK-47 | Redline (Field-Tested)": 2,
        "Revolution Case": 3,
    }


@pytest.mark.asyncio
async def test_unknown_items_are_added_to_catalog(db_session, reference_data) -> None:
    user = await add_user(db_session, reference_data.usd)

    await refresh_inventory(db_session, FakeInventory(STANDARD_PAYLOAD), user, reference_data.game)

    skins = (await db_session.execute(select(Skin).order_by(Skin.market_hash_name))).scalars().all()
    assert [s.market_hash_name for s in skins] == ["AK-47 | Redline (Field-Tested)", "Revolution Case"]
    assert all(s.game_id == reference_data.game.id for s in skins)
    assert skins[1].skin_icon_url == "icon-20"


@pytest.mark.asyncio
async def test_known_items_reuse_catalog_row(db_session, reference_data) -> None:
    known = await add_skin(db_session, reference_data.game, "REVOLUTION CASE")
    user = await add_user(db_session, reference_data.usd)

    await refresh_inventory(db_session, FakeInventory(STANDARD_PAYLOAD), user, reference_data.game)

    rows = await storage.list_user_inventory_for_game(db_session, user.id, reference_data.game.id)
    assert known.id in {row.skin_id for row in rows}
    assert (await db_session.execute(select(func.count(Skin.id)))).scalar_one() == 2


# ---------------------------------------------------------------------------
# Test 2: refresh replaces the previous snapshot for that game only
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_refresh_replaces_previous_snapshot(db_session, reference_data) -> None:
    user = await add_user(db_session, reference_data.usd)
    await refresh_inventory(db_session, FakeInventory(STANDARD_PAYLOAD), user, reference_data.game)

    sold_the_rifle = {
        "success": 1,
        "assets": [asset("3", "20", amount=1)],
        "descriptions": [description("20", "Revolution Case")],
    }
    await refresh_inventory(db_session, FakeInventory(sold_the_rifle), user, reference_data.game)

    assert await inventory_counts(db_session, user.id) == {"Revolution Case": 1}


@pytest.mark.asyncio
async def test_other_games_are_untouched(db_session, reference_data) -> None:
    dota = Game(id=2, steam_game_id=570, title="Dota 2")
    db_session.add(dota)
    await db_session.commit()
    courier = await add_skin(db_session, dota, "Golden Baby Roshan")

    user = await add_user(db_session, reference_data.usd)
    db_session.add(Inventory(user_id=user.id, skin_id=courier.id, count=1))
    await db_session.commit()

    await refresh_inventory(db_session, FakeInventory(STANDARD_PAYLOAD), user, reference_data.game)

    counts = await inventory_counts(db_session, user.id)
    assert counts["Golden Baby Roshan"] == 1
    assert len(counts) == 3


# ---------------------------------------------------------------------------
# Test 3: upstream failure keeps the existing snapshot
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_upstream_failure_keeps_inventory(db_session, reference_data) -> None:
    user = await add_user(db_session, reference_data.usd)
    await refresh_inventory(db_session, FakeInventory(STANDARD_PAYLOAD), user, reference_data.game)

    with pytest.raises(UpstreamUnavailable):
        await refresh_inventory(
            db_session,
            FakeInventory(UpstreamUnavailable("Steam returned HTTP 403", status_code=403)),
            user,
            reference_data.game,
        )

    assert len(await inventory_counts(db_session, user.id)) == 2
