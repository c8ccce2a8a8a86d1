"""
Active Group, Active & Group Valuation History Models

An ActiveGroup is a user-owned bucket of unsold holdings (Actives). The
rollup service appends one ActiveGroupValuationPoint per group per day,
expressed in the owning user's currency.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DECIMAL, INTEGER, TIMESTAMP, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from steam_storage.models.base import Base, utcnow
from steam_storage.models.skin import Skin
from steam_storage.models.user import User


class ActiveGroup(Base):
    __tablename__ = "active_groups"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(300), nullable=True)
    colour: Mapped[str | None] = mapped_column(String(6), nullable=True)
    goal_sum: Mapped[Decimal | None] = mapped_column(DECIMAL(18, 2), nullable=True)

    user: Mapped[User] = relationship(back_populates="active_groups")
    actives: Mapped[list[Active]] = relationship(back_populates="group")
    valuation_points: Mapped[list[ActiveGroupValuationPoint]] = relationship(
        back_populates="group"
    )

    def __repr__(self) -> str:
        return f"<ActiveGroup id={self.id} user_id={self.user_id} title={self.title!r}>"


class Active(Base):
    """A holding: `count` units of a skin bought at `buy_price`."""

    __tablename__ = "actives"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("active_groups.id"), nullable=False)
    skin_id: Mapped[int] = mapped_column(ForeignKey("skins.id"), nullable=False)
    description: Mapped[str | None] = mapped_column(String(300), nullable=True)
    buy_date: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )
    count: Mapped[int] = mapped_column(INTEGER, nullable=False)
    buy_price: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    goal_price: Mapped[Decimal | None] = mapped_column(DECIMAL(18, 2), nullable=True)

    group: Mapped[ActiveGroup] = relationship(back_populates="actives")
    skin: Mapped[Skin] = relationship()

    def __repr__(self) -> str:
        return f"<Active id={self.id} group_id={self.group_id} skin_id={self.skin_id} count={self.count}>"


class ActiveGroupValuationPoint(Base):
    """Daily total value of a group, in the owner's currency."""

    __tablename__ = "active_group_valuation_history"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("active_groups.id"), nullable=False)
    total_sum: Mapped[Decimal] = mapped_column(DECIMAL(18, 2), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )

    group: Mapped[ActiveGroup] = relationship(back_populates="valuation_points")

    __table_args__ = (
        Index("ix_active_group_valuation_history_recorded", "recorded_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ActiveGroupValuationPoint group_id={self.group_id} "
            f"total_sum={self.total_sum} at={self.recorded_at}>"
        )
