"""
Currency & Exchange Rate History Models

Rates are stored relative to the BASE currency (settings.BASE_CURRENCY_ID).
A currency with no rate points is treated as rate 1.0.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DECIMAL, INTEGER, TIMESTAMP, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from steam_storage.models.base import Base, utcnow


class Currency(Base):
    """A Steam wallet currency with the formatting rules of its price strings."""

    __tablename__ = "currencies"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    steam_currency_id: Mapped[int] = mapped_column(
        INTEGER, unique=True, nullable=False, comment="Steam 'currency' query parameter"
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    mark: Mapped[str] = mapped_column(
        String(10), nullable=False, comment="Symbol in price strings, e.g. '$', 'pуб.'"
    )
    culture_info: Mapped[str] = mapped_column(
        String(10), nullable=False, default="en-US",
        comment="Culture name deciding decimal/group separators",
    )

    rate_points: Mapped[list[CurrencyRatePoint]] = relationship(back_populates="currency")

    def __repr__(self) -> str:
        return f"<Currency id={self.id} title={self.title!r} mark={self.mark!r}>"


class CurrencyRatePoint(Base):
    """Exchange rate of a currency against BASE at a point in time."""

    __tablename__ = "currency_rate_history"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    currency_id: Mapped[int] = mapped_column(ForeignKey("currencies.id"), nullable=False)
    rate: Mapped[Decimal] = mapped_column(
        DECIMAL(18, 6), nullable=False, comment="Units of this currency per 1 BASE unit"
    )
    recorded_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )

    currency: Mapped[Currency] = relationship(back_populates="rate_points")

    __table_args__ = (
        Index("ix_currency_rate_history_currency_recorded", "currency_id", "recorded_at"),
    )

    def __repr__(self) -> str:
        return f"<CurrencyRatePoint currency_id={self.currency_id} rate={self.rate} at={self.recorded_at}>"
