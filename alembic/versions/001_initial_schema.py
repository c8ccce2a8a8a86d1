"""Initial schema — catalog, currencies, users, active groups, history tables

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- games ---
    op.create_table(
        "games",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("steam_game_id", sa.INTEGER(), unique=True, nullable=False, comment="Steam app id"),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("game_icon_url", sa.String(300), nullable=False, server_default=""),
    )

    # --- skins (catalog) ---
    op.create_table(
        "skins",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("game_id", sa.INTEGER(), sa.ForeignKey("games.id"), nullable=False),
        sa.Column(
            "market_hash_name",
            sa.String(300),
            unique=True,
            nullable=False,
            comment="Steam market hash name",
        ),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column(
            "skin_icon_url",
            sa.String(2000),
            nullable=False,
            server_default="",
            comment="Icon hash, see skin_icon_url()",
        ),
    )
    # Crawler lookups compare lower(market_hash_name)
    op.create_index("ix_skins_market_hash_name_lower", "skins", [sa.text("lower(market_hash_name)")])

    # --- skin_price_history (append-only) ---
    op.create_table(
        "skin_price_history",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("skin_id", sa.INTEGER(), sa.ForeignKey("skins.id"), nullable=False),
        sa.Column("price", sa.DECIMAL(18, 2), nullable=False, comment="Lowest listing in BASE currency"),
        sa.Column(
            "recorded_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_skin_price_history_skin_recorded", "skin_price_history", ["skin_id", "recorded_at"]
    )

    # --- currencies ---
    op.create_table(
        "currencies",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column(
            "steam_currency_id",
            sa.INTEGER(),
            unique=True,
            nullable=False,
            comment="Steam 'currency' query parameter",
        ),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("mark", sa.String(10), nullable=False),
        sa.Column("culture_info", sa.String(10), nullable=False, server_default="en-US"),
    )

    # --- currency_rate_history (append-only) ---
    op.create_table(
        "currency_rate_history",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("currency_id", sa.INTEGER(), sa.ForeignKey("currencies.id"), nullable=False),
        sa.Column("rate", sa.DECIMAL(18, 6), nullable=False, comment="Units of this currency per 1 BASE"),
        sa.Column(
            "recorded_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_currency_rate_history_currency_recorded",
        "currency_rate_history",
        ["currency_id", "recorded_at"],
    )

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("steam_id", sa.BIGINT(), unique=True, nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("currency_id", sa.INTEGER(), sa.ForeignKey("currencies.id"), nullable=False),
        sa.Column("start_page", sa.String(50), nullable=False, server_default="actives"),
        sa.Column(
            "date_registration",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("goal_sum", sa.DECIMAL(18, 2), nullable=True),
    )

    # --- active_groups / actives ---
    op.create_table(
        "active_groups",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.INTEGER(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.String(300), nullable=True),
        sa.Column("colour", sa.String(6), nullable=True),
        sa.Column("goal_sum", sa.DECIMAL(18, 2), nullable=True),
    )

    op.create_table(
        "actives",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("group_id", sa.INTEGER(), sa.ForeignKey("active_groups.id"), nullable=False),
        sa.Column("skin_id", sa.INTEGER(), sa.ForeignKey("skins.id"), nullable=False),
        sa.Column("description", sa.String(300), nullable=True),
        sa.Column(
            "buy_date",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("count", sa.INTEGER(), nullable=False),
        sa.Column("buy_price", sa.DECIMAL(18, 2), nullable=False),
        sa.Column("goal_price", sa.DECIMAL(18, 2), nullable=True),
    )

    # --- active_group_valuation_history (append-only) ---
    op.create_table(
        "active_group_valuation_history",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("group_id", sa.INTEGER(), sa.ForeignKey("active_groups.id"), nullable=False),
        sa.Column("total_sum", sa.DECIMAL(18, 2), nullable=False, comment="In the owner's currency"),
        sa.Column(
            "recorded_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_active_group_valuation_history_recorded",
        "active_group_valuation_history",
        ["recorded_at"],
    )

    # --- inventories ---
    op.create_table(
        "inventories",
        sa.Column("id", sa.INTEGER(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.INTEGER(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("skin_id", sa.INTEGER(), sa.ForeignKey("skins.id"), nullable=False),
        sa.Column("count", sa.INTEGER(), nullable=False, server_default="1"),
        sa.UniqueConstraint("user_id", "skin_id", name="uq_inventories_user_skin"),
    )


def downgrade() -> None:
    op.drop_table("inventories")
    op.drop_index("ix_active_group_valuation_history_recorded", table_name="active_group_valuation_history")
    op.drop_table("active_group_valuation_history")
    op.drop_table("actives")
    op.drop_table("active_groups")
    op.drop_table("users")
    op.drop_index("ix_currency_rate_history_currency_recorded", table_name="currency_rate_history")
    op.drop_table("currency_rate_history")
    op.drop_table("currencies")
    op.drop_index("ix_skin_price_history_skin_recorded", table_name="skin_price_history")
    op.drop_table("skin_price_history")
    op.drop_index("ix_skins_market_hash_name_lower", table_name="skins")
    op.drop_table("skins")
    op.drop_table("games")
