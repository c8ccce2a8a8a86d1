"""
Models package — export all SQLAlchemy models.
"""

from steam_storage.models.base import Base
from steam_storage.models.game import Game
from steam_storage.models.skin import Skin, SkinPricePoint
from steam_storage.models.currency import Currency, CurrencyRatePoint
from steam_storage.models.user import User
from steam_storage.models.active_group import Active, ActiveGroup, ActiveGroupValuationPoint
from steam_storage.models.inventory import Inventory

__all__ = [
    "Base",
    "Game",
    "Skin",
    "SkinPricePoint",
    "Currency",
    "CurrencyRatePoint",
    "User",
    "ActiveGroup",
    "Active",
    "ActiveGroupValuationPoint",
    "Inventory",
]
