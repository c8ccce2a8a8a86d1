"""
Inventory Model

Snapshot of a user's Steam inventory, rebuilt per game by inventory refresh.
"""

from __future__ import annotations

from sqlalchemy import INTEGER, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from steam_storage.models.base import Base
from steam_storage.models.skin import Skin
from steam_storage.models.user import User


class Inventory(Base):
    __tablename__ = "inventories"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    skin_id: Mapped[int] = mapped_column(ForeignKey("skins.id"), nullable=False)
    count: Mapped[int] = mapped_column(INTEGER, nullable=False, default=1)

    user: Mapped[User] = relationship()
    skin: Mapped[Skin] = relationship()

    __table_args__ = (UniqueConstraint("user_id", "skin_id", name="uq_inventories_user_skin"),)

    def __repr__(self) -> str:
        return f"<Inventory user_id={self.user_id} skin_id={self.skin_id} count={self.count}>"
