"""
Steam Storage — Manual Job Trigger

Runs a single pipeline job once, outside the scheduler. Useful after adding
a game or a currency, or to backfill a day the scheduler missed.

Usage:
    python scripts/run_job.py currencies
    python scripts/run_job.py skins --game-id 1
    python scripts/run_job.py valuations
    python scripts/run_job.py inventory --user-id 7 --game-id 1
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from steam_storage import storage
from steam_storage.config import settings
from steam_storage.database import create_db_engine
from steam_storage.errors import AlreadyDone, SteamStorageError
from steam_storage.main import configure_logging
from steam_storage.pipeline.currency_refresh import refresh_currency_rates
from steam_storage.pipeline.inventory_sync import refresh_inventory
from steam_storage.pipeline.skin_sync import SkinCatalogSyncer
from steam_storage.pipeline.steam_market import SteamMarketClient
from steam_storage.pipeline.valuation import refresh_group_valuations


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run one Steam Storage sync job immediately.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_job.py currencies
  python scripts/run_job.py skins
  python scripts/run_job.py skins --game-id 1
  python scripts/run_job.py valuations
  python scripts/run_job.py inventory --user-id 7 --game-id 1
""",
    )
    jobs = parser.add_subparsers(dest="job", required=True)

    jobs.add_parser("currencies", help="Append today's exchange rate for every currency.")

    skins = jobs.add_parser("skins", help="Crawl the market listing of every (or one) game.")
    skins.add_argument(
        "--game-id",
        type=int,
        default=None,
        help="Internal game id to crawl (default: every tracked game).",
    )

    jobs.add_parser("valuations", help="Append today's valuation point for every active group.")

    inventory = jobs.add_parser("inventory", help="Rebuild one user's inventory for one game.")
    inventory.add_argument("--user-id", type=int, required=True, help="Internal user id.")
    inventory.add_argument("--game-id", type=int, required=True, help="Internal game id.")

    return parser.parse_args(argv)


async def run_job(args: argparse.Namespace) -> str:
    """Run the selected job and return a one-line summary."""
    engine, session_factory = create_db_engine()
    try:
        async with session_factory() as session:
            if args.job == "valuations":
                recorded = await refresh_group_valuations(session)
                return f"Recorded {recorded} group valuation point(s)."

            async with SteamMarketClient() as client:
                if args.job == "currencies":
                    recorded = await refresh_currency_rates(session, client)
                    return f"Recorded {recorded} currency rate point(s)."

                if args.job == "skins":
                    syncer = SkinCatalogSyncer(session, client)
                    if args.game_id is None:
                        results = await syncer.sync_all()
                    else:
                        game = await storage.find_game_by_id(session, args.game_id)
                        if game is None:
                            raise SteamStorageError(f"Game id={args.game_id} not found")
                        currency = await storage.find_currency_by_id(session, settings.BASE_CURRENCY_ID)
                        if currency is None:
                            raise SteamStorageError(f"Base currency id={settings.BASE_CURRENCY_ID} not found")
                        results = [await syncer.sync_game(game, currency)]
                    inserted = sum(r.inserted for r in results)
                    points = sum(r.price_points for r in results)
                    return f"Crawled {len(results)} game(s): {inserted} new skin(s), {points} price point(s)."

                user = await storage.find_user_by_id(session, args.user_id)
                if user is None:
                    raise SteamStorageError(f"User id={args.user_id} not found")
                game = await storage.find_game_by_id(session, args.game_id)
                if game is None:
                    raise SteamStorageError(f"Game id={args.game_id} not found")
                skins = await refresh_inventory(session, client, user, game)
                return f"Inventory of user {user.id} now holds {skins} distinct skin(s)."
    finally:
        await engine.dispose()


async def main() -> None:
    args = parse_args()
    configure_logging(settings.LOG_LEVEL)

    print(f"Running job: {args.job}")

    try:
        summary = await run_job(args)
    except AlreadyDone as e:
        print(f"Nothing to do: {e}")
        return
    except Exception as e:
        print(f"Job {args.job} failed: {e}", file=sys.stderr)
        sys.exit(1)

    print(summary)


if __name__ == "__main__":
    asyncio.run(main())
