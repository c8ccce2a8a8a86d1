"""
User Model

Only the fields the sync pipeline reads: the chosen currency drives the
conversion of group valuations, steam_id drives inventory refresh.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import BIGINT, DECIMAL, INTEGER, TIMESTAMP, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from steam_storage.models.base import Base, utcnow
from steam_storage.models.currency import Currency

if TYPE_CHECKING:
    from steam_storage.models.active_group import ActiveGroup


class User(Base):
    """Portfolio owner, identified upstream by a Steam profile id."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    steam_id: Mapped[int] = mapped_column(BIGINT, unique=True, nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    currency_id: Mapped[int] = mapped_column(ForeignKey("currencies.id"), nullable=False)
    start_page: Mapped[str] = mapped_column(String(50), nullable=False, default="actives")
    date_registration: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )
    goal_sum: Mapped[Decimal | None] = mapped_column(DECIMAL(18, 2), nullable=True)

    currency: Mapped[Currency] = relationship()
    active_groups: Mapped[list[ActiveGroup]] = relationship(back_populates="user")

    def __repr__(self) -> str:
        return f"<User id={self.id} steam_id={self.steam_id} currency_id={self.currency_id}>"
