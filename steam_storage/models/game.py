"""
Game Model

A tracked Steam game whose marketplace items are crawled. Created by an
admin action; only title and icon change afterwards.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import INTEGER, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from steam_storage.models.base import Base

if TYPE_CHECKING:
    from steam_storage.models.skin import Skin


class Game(Base):
    """Tracked game, identified upstream by its Steam app id."""

    __tablename__ = "games"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    steam_game_id: Mapped[int] = mapped_column(
        INTEGER, unique=True, nullable=False, comment="Steam app id (730 for CS2)"
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    game_icon_url: Mapped[str] = mapped_column(
        String(300), nullable=False, default="", comment="Icon hash, see game_icon_url()"
    )

    skins: Mapped[list[Skin]] = relationship(back_populates="game")

    def __repr__(self) -> str:
        return f"<Game id={self.id} steam_game_id={self.steam_game_id} title={self.title!r}>"
