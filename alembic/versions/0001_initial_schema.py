"""initial debate battle schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("address", sa.String(length=100), nullable=False),
        sa.Column("username", sa.String(length=50), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_users")),
        sa.UniqueConstraint("address", name=op.f("uq_users_address")),
    )
    op.create_table(
        "battles",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("source", sa.String(length=255), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("support_points", sa.JSON(), nullable=False),
        sa.Column("oppose_points", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_hours", sa.Float(), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=False),
        sa.Column("debate_id", sa.Integer(), nullable=True),
        sa.Column("insights", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('ACTIVE','COMPLETING','COMPLETED')",
            name=op.f("ck_battles_status_enum"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_battles")),
    )
    op.create_index("ix_battles_status_end_time", "battles", ["status", "end_time"])
    op.create_index("ix_battles_created_at", "battles", ["created_at"])

    op.create_table(
        "casts",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("battle_id", ID_TYPE, nullable=False),
        sa.Column("user_id", ID_TYPE, nullable=False),
        sa.Column("side", sa.String(length=10), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("like_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("side IN ('SUPPORT','OPPOSE')", name=op.f("ck_casts_side_enum")),
        sa.ForeignKeyConstraint(
            ["battle_id"], ["battles.id"],
            name=op.f("fk_casts_battle_id_battles"), ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name=op.f("fk_casts_user_id_users"), ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_casts")),
    )
    op.create_index("ix_casts_battle", "casts", ["battle_id"])
    op.create_index("ix_casts_user", "casts", ["user_id"])

    op.create_table(
        "cast_likes",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("cast_id", ID_TYPE, nullable=False),
        sa.Column("user_id", ID_TYPE, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["cast_id"], ["casts.id"],
            name=op.f("fk_cast_likes_cast_id_casts"), ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name=op.f("fk_cast_likes_user_id_users"), ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_cast_likes")),
        sa.UniqueConstraint("cast_id", "user_id", name="cast_likes_cast_user_key"),
    )

    op.create_table(
        "battle_winners",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("battle_id", ID_TYPE, nullable=False),
        sa.Column("cast_id", ID_TYPE, nullable=False),
        sa.Column("user_id", ID_TYPE, nullable=False),
        sa.Column("side", sa.String(length=10), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("selection_method", sa.String(length=50), nullable=False),
        sa.Column("side_resolution", sa.String(length=30), nullable=True),
        sa.Column("reasoning", sa.Text(), nullable=False),
        sa.Column("candidates", sa.JSON(), nullable=False),
        sa.Column("support_score", sa.Float(), nullable=True),
        sa.Column("oppose_score", sa.Float(), nullable=True),
        sa.Column("insights", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["battle_id"], ["battles.id"],
            name=op.f("fk_battle_winners_battle_id_battles"), ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["cast_id"], ["casts.id"],
            name=op.f("fk_battle_winners_cast_id_casts"), ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name=op.f("fk_battle_winners_user_id_users"), ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_battle_winners")),
        sa.UniqueConstraint("battle_id", name=op.f("uq_battle_winners_battle_id")),
    )

    op.create_table(
        "battle_history",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("battle_id", ID_TYPE, nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_participants", sa.Integer(), nullable=False),
        sa.Column("total_casts", sa.Integer(), nullable=False),
        sa.Column("winner_address", sa.String(length=100), nullable=True),
        sa.ForeignKeyConstraint(
            ["battle_id"], ["battles.id"],
            name=op.f("fk_battle_history_battle_id_battles"), ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_battle_history")),
        sa.UniqueConstraint("battle_id", name=op.f("uq_battle_history_battle_id")),
    )

    op.create_table(
        "ledger_transactions",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("battle_id", ID_TYPE, nullable=True),
        sa.Column("debate_id", sa.Integer(), nullable=False),
        sa.Column("winner_address", sa.String(length=100), nullable=True),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("tx_hash", sa.String(length=255), nullable=True),
        sa.Column("request_payload_json", sa.Text(), nullable=True),
        sa.Column("response_payload_json", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "type IN ('declare_winner')", name=op.f("ck_ledger_transactions_type_enum")
        ),
        sa.CheckConstraint(
            "status IN ('queued','sent','confirmed','failed')",
            name=op.f("ck_ledger_transactions_status_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["battle_id"], ["battles.id"],
            name=op.f("fk_ledger_transactions_battle_id_battles"), ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ledger_transactions")),
        sa.UniqueConstraint("tx_hash", name=op.f("uq_ledger_transactions_tx_hash")),
    )
    op.create_index("ix_ledger_battle", "ledger_transactions", ["battle_id"])
    op.create_index("ix_ledger_status", "ledger_transactions", ["status"])


def downgrade() -> None:
    op.drop_index("ix_ledger_status", table_name="ledger_transactions")
    op.drop_index("ix_ledger_battle", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_table("battle_history")
    op.drop_table("battle_winners")
    op.drop_table("cast_likes")
    op.drop_index("ix_casts_user", table_name="casts")
    op.drop_index("ix_casts_battle", table_name="casts")
    op.drop_table("casts")
    op.drop_index("ix_battles_created_at", table_name="battles")
    op.drop_index("ix_battles_status_end_time", table_name="battles")
    op.drop_table("battles")
    op.drop_table("users")
