"""
Steam Storage — Steam Community Market Client

Wraps the marketplace endpoints the sync pipeline needs:
- paginated item search (/market/search/render, norender=1)
- single item lookup by market hash name
- price overview of one item in one currency (/market/priceoverview/)
- user inventory listing (/inventory/{steam_id}/{app_id}/2)

Prices come back as locale-formatted strings ("1 234,56 pуб.") and are
returned untouched; see utils/price.py for parsing.

No retry logic lives here. Every failure is raised as UpstreamUnavailable,
UpstreamMalformed or NotFound and the calling service decides how to back off.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from steam_storage.config import settings
from steam_storage.errors import NotFound, UpstreamMalformed, UpstreamUnavailable

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Static asset hosts
# ---------------------------------------------------------------------------
SKIN_ICON_BASE_URL = "https://community.cloudflare.steamstatic.com/economy/image"
GAME_ICON_BASE_URL = "https://cdn.cloudflare.steamstatic.com/steamcommunity/public/images/apps"

# Inventory context for tradable community items
INVENTORY_CONTEXT_ID = 2


def skin_icon_url(icon_hash: str) -> str:
    return f"{SKIN_ICON_BASE_URL}/{icon_hash}"


def game_icon_url(steam_game_id: int, icon_hash: str) -> str:
    return f"{GAME_ICON_BASE_URL}/{steam_game_id}/{icon_hash}.jpg"


def skin_market_url(steam_game_id: int, market_hash_name: str) -> str:
    return (
        f"{settings.STEAM_COMMUNITY_URL}/market/listings/"
        f"{steam_game_id}/{quote(market_hash_name, safe='')}"
    )


# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


class AssetDescription(BaseModel):
    """Item description attached to a search result."""

    appid: int | None = None
    icon_url: str = Field(default="", description="Icon hash, see skin_icon_url()")
    name: str = ""
    market_name: str = ""
    market_hash_name: str = ""
    type: str = ""


class SkinResult(BaseModel):
    """One row of a market search page."""

    name: str = Field(..., description="Display title")
    hash_name: str = Field(..., description="Market hash name")
    sell_listings: int = 0
    sell_price: int = Field(default=0, description="Lowest listing in smallest currency unit")
    sell_price_text: str = Field(default="", description="Locale-formatted lowest listing")
    asset_description: AssetDescription = Field(default_factory=AssetDescription)


class SearchPage(BaseModel):
    """Response of /market/search/render?norender=1."""

    success: bool = True
    start: int = 0
    pagesize: int = 0
    total_count: int = 0
    results: list[SkinResult] = Field(default_factory=list)


class PriceOverview(BaseModel):
    """Response of /market/priceoverview/."""

    success: bool = False
    lowest_price: str | None = None
    median_price: str | None = None
    volume: str | None = None


class InventoryAsset(BaseModel):
    appid: int
    contextid: str
    assetid: str
    classid: str
    instanceid: str
    amount: str = "1"


class InventoryDescription(BaseModel):
    appid: int
    classid: str
    instanceid: str
    icon_url: str = ""
    name: str = ""
    market_name: str = ""
    market_hash_name: str = ""
    tradable: int = 0
    marketable: int = 0
    commodity: int = 0


class InventoryResponse(BaseModel):
    """Response of /inventory/{steam_id}/{app_id}/2."""

    success: int = 0
    total_inventory_count: int = 0
    assets: list[InventoryAsset] = Field(default_factory=list)
    descriptions: list[InventoryDescription] = Field(default_factory=list)

    def items(self) -> list[InventoryDescription]:
        """One description per owned asset (stacked assets repeat)."""
        by_class = {(d.classid, d.instanceid): d for d in self.descriptions}
        owned: list[InventoryDescription] = []
        for asset in self.assets:
            description = by_class.get((asset.classid, asset.instanceid))
            if description is None:
                continue
            try:
                amount = max(int(asset.amount), 1)
            except ValueError:
                amount = 1
            owned.extend([description] * amount)
        return owned


# ---------------------------------------------------------------------------
# API Client
# ---------------------------------------------------------------------------


class SteamMarketClient:
    """
    Async client for the Steam Community Market.

    Usage:
        async with SteamMarketClient() as client:
            page = await client.search_skins(730, count=100, start=0)
            price = await client.fetch_price_overview(730, "AK-47 | Redline (Field-Tested)", 1)
    """

    def __init__(
        self,
        base_url: str | None = None,
        language: str | None = None,
        timeout: float | None = None,
    ):
        self._base_url = base_url or settings.STEAM_COMMUNITY_URL
        self._language = language or settings.STEAM_LANGUAGE
        self._timeout = timeout or settings.STEAM_REQUEST_TIMEOUT_SECONDS
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SteamMarketClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Accept": "application/json"},
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET a path and return the decoded JSON body."""
        assert self._client is not None, "Client not initialized. Use 'async with'."

        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "steam_http_error",
                status_code=e.response.status_code,
                path=path,
            )
            raise UpstreamUnavailable(
                f"Steam returned HTTP {e.response.status_code} for {path}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            logger.warning(
                "steam_request_error",
                error=str(e),
                error_type=type(e).__name__,
                path=path,
            )
            raise UpstreamUnavailable(f"Steam request to {path} failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            logger.warning("steam_invalid_json", path=path, body=response.text[:200])
            raise UpstreamMalformed(f"Steam returned a non-JSON body for {path}") from e

        if data is None:
            # Steam answers 200 with a literal "null" when it throttles
            raise UpstreamMalformed(f"Steam returned an empty body for {path}")
        return data

    @staticmethod
    def _validate(model: type[BaseModel], data: Any, path: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning("steam_schema_mismatch", path=path, errors=e.error_count())
            raise UpstreamMalformed(f"Unexpected response shape from {path}: {e}") from e

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    async def search_skins(
        self,
        steam_game_id: int,
        count: int,
        start: int,
        steam_currency_id: int | None = None,
        sort_popular: bool = False,
    ) -> SearchPage:
        """
        Fetch one page of the market listing for a game.

        Args:
            steam_game_id: Steam app id.
            count: Page size.
            start: Offset of the first result.
            steam_currency_id: Currency the sell prices are quoted in.
            sort_popular: Order by listing activity, most active first.

        Returns:
            SearchPage with total_count and the page results.
        """
        path = "/market/search/render/"
        params: dict[str, Any] = {
            "query": "",
            "norender": 1,
            "search_descriptions": 0,
            "l": self._language,
            "appid": steam_game_id,
            "count": count,
            "start": start,
        }
        if steam_currency_id is not None:
            params["currency"] = steam_currency_id
        if sort_popular:
            params["sort_column"] = "popular"
            params["sort_dir"] = "desc"

        data = await self._request(path, params=params)
        page = self._validate(SearchPage, data, path)
        if not page.success:
            raise UpstreamMalformed(f"Steam search for app {steam_game_id} reported success=false")

        logger.debug(
            "steam_search_page",
            steam_game_id=steam_game_id,
            start=start,
            count=count,
            results_count=len(page.results),
            total_count=page.total_count,
        )
        return page

    async def fetch_most_popular_skin(self, steam_game_id: int) -> SkinResult:
        """Return the single most actively traded item of a game."""
        page = await self.search_skins(steam_game_id, count=1, start=0, sort_popular=True)
        if not page.results:
            raise NotFound(f"No marketplace items for app {steam_game_id}")
        return page.results[0]

    async def fetch_skin_info(self, market_hash_name: str) -> SkinResult:
        """Look up a single item by its market hash name."""
        path = "/market/search/render/"
        data = await self._request(
            path,
            params={
                "query": market_hash_name,
                "norender": 1,
                "l": self._language,
                "start": 0,
                "count": 1,
            },
        )
        page = self._validate(SearchPage, data, path)
        for result in page.results:
            if result.hash_name.lower() == market_hash_name.lower():
                return result
        raise NotFound(f"Item {market_hash_name!r} not found on the marketplace")

    async def fetch_price_overview(
        self,
        steam_game_id: int,
        market_hash_name: str,
        steam_currency_id: int,
    ) -> str:
        """
        Lowest listing price of an item in one currency.

        Returns:
            Locale-formatted price string, e.g. "9,00€".

        Raises:
            NotFound: The item has no listings in this currency.
        """
        path = "/market/priceoverview/"
        data = await self._request(
            path,
            params={
                "appid": steam_game_id,
                "market_hash_name": market_hash_name,
                "currency": steam_currency_id,
            },
        )
        overview = self._validate(PriceOverview, data, path)
        if not overview.success or not overview.lowest_price:
            raise NotFound(
                f"No lowest price for {market_hash_name!r} in currency {steam_currency_id}"
            )
        return overview.lowest_price

    async def fetch_inventory(
        self,
        steam_profile_id: int,
        steam_game_id: int,
        count: int | None = None,
    ) -> InventoryResponse:
        """List the community inventory of a Steam profile for one game."""
        path = f"/inventory/{steam_profile_id}/{steam_game_id}/{INVENTORY_CONTEXT_ID}"
        data = await self._request(
            path,
            params={"l": self._language, "count": count or settings.INVENTORY_MAX_COUNT},
        )
        inventory = self._validate(InventoryResponse, data, path)

        logger.info(
            "steam_inventory_fetched",
            steam_profile_id=steam_profile_id,
            steam_game_id=steam_game_id,
            assets_count=len(inventory.assets),
            total_inventory_count=inventory.total_inventory_count,
        )
        return inventory
