"""
Skin & Skin Price History Models

Skins are created by the catalog crawler the first time they are observed
and are never deleted. Price points are append-only: every crawl appends a
new row, and the current price is the point with the latest recorded_at.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DECIMAL, INTEGER, TIMESTAMP, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from steam_storage.models.base import Base, utcnow

if TYPE_CHECKING:
    from steam_storage.models.game import Game


class Skin(Base):
    """A marketplace item, unique by market hash name (case-insensitive)."""

    __tablename__ = "skins"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    game_id: Mapped[int] = mapped_column(ForeignKey("games.id"), nullable=False)
    market_hash_name: Mapped[str] = mapped_column(
        String(300), unique=True, nullable=False, comment="Steam market hash name"
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    skin_icon_url: Mapped[str] = mapped_column(
        String(2000), nullable=False, default="", comment="Icon hash, see skin_icon_url()"
    )

    game: Mapped[Game] = relationship(back_populates="skins")
    price_points: Mapped[list[SkinPricePoint]] = relationship(back_populates="skin")

    def __repr__(self) -> str:
        return f"<Skin id={self.id} market_hash_name={self.market_hash_name!r}>"


class SkinPricePoint(Base):
    """One price sample for a skin, in BASE currency."""

    __tablename__ = "skin_price_history"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    skin_id: Mapped[int] = mapped_column(ForeignKey("skins.id"), nullable=False)
    price: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 2), nullable=False, comment="Listing price in BASE currency"
    )
    recorded_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )

    skin: Mapped[Skin] = relationship(back_populates="price_points")

    __table_args__ = (
        Index("ix_skin_price_history_skin_recorded", "skin_id", "recorded_at"),
    )

    def __repr__(self) -> str:
        return f"<SkinPricePoint skin_id={self.skin_id} price={self.price} at={self.recorded_at}>"
