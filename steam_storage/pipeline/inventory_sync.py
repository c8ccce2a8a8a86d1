"""
Steam Storage — Inventory Refresh

Rebuilds a user's Inventory rows for one game from their public Steam
inventory. Items that can be neither sold nor traded are ignored; items not
yet in the catalog are added to it. The delete and the re-insert happen in
one transaction so a failed fetch never leaves the user with an empty
inventory.
"""

from __future__ import annotations

from collections import Counter

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from steam_storage import storage
from steam_storage.models import Game, Inventory, User
from steam_storage.pipeline.steam_market import InventoryDescription, SteamMarketClient

logger = structlog.get_logger(__name__)


def _hash_name(item: InventoryDescription) -> str:
    return item.market_hash_name or item.market_name or item.name


async def refresh_inventory(
    session: AsyncSession,
    client: SteamMarketClient,
    user: User,
    game: Game,
) -> int:
    """
    Replace a user's inventory for a game with the current Steam listing.

    Returns:
        Number of distinct skins now in the user's inventory for the game.
    """
    listing = await client.fetch_inventory(user.steam_id, game.steam_game_id)

    owned: Counter[str] = Counter()
    descriptions: dict[str, InventoryDescription] = {}
    for item in listing.items():
        if not item.marketable and not item.tradable:
            continue
        hash_name = _hash_name(item)
        if not hash_name:
            continue
        key = hash_name.lower()
        owned[key] += 1
        descriptions.setdefault(key, item)

    inserted = 0
    try:
        removed = await storage.delete_user_inventory_for_game(session, user.id, game.id)
        known = await storage.find_skins_by_hashes(
            session, (_hash_name(item) for item in descriptions.values())
        )

        for key, count in owned.items():
            skin = known.get(key)
            if skin is None:
                description = descriptions[key]
                skin = await storage.insert_skin(
                    session,
                    game_id=game.id,
                    market_hash_name=_hash_name(description),
                    title=description.name or description.market_name,
                    skin_icon_url=description.icon_url,
                )
                inserted += 1
            session.add(Inventory(user_id=user.id, skin_id=skin.id, count=count))

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "inventory_refresh_complete",
        user_id=user.id,
        game_id=game.id,
        removed=removed,
        skins=len(owned),
        items=sum(owned.values()),
        catalog_inserted=inserted,
    )
    return len(owned)
