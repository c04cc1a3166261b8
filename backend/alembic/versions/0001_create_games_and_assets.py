"""create games and assets

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column(
            "role",
            sa.Enum("player", "developer", "admin", name="userrole"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_users_name", "users", ["name"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    op.create_table(
        "games",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("developer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("version", sa.String(length=20), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_games_developer_id", "games", ["developer_id"], unique=False)

    op.create_table(
        "game_assets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("game_id", sa.Integer(), sa.ForeignKey("games.id"), nullable=False),
        sa.Column(
            "asset_type",
            sa.Enum("main_game", "texture", "sound", "model", "script", "other", name="assettype"),
            nullable=False,
        ),
        sa.Column("file_name", sa.String(length=400), nullable=False),
        sa.Column("file_path", sa.String(length=1000), nullable=False),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=False),
        sa.Column("file_extension", sa.String(length=32), nullable=False),
        sa.Column("mime_type", sa.String(length=200), nullable=True),
        sa.Column("checksum", sa.String(length=64), nullable=False),
        sa.Column("version", sa.String(length=20), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("is_compressed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("purged_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_game_assets_game_id", "game_assets", ["game_id"], unique=False)
    op.create_index("ix_game_assets_checksum", "game_assets", ["checksum"], unique=False)
    op.create_index("ix_game_assets_game_type_active", "game_assets", ["game_id", "asset_type", "is_active"], unique=False)
    # At most one active main build per game.
    op.create_index(
        "uq_game_assets_active_main_game",
        "game_assets",
        ["game_id"],
        unique=True,
        postgresql_where=sa.text("is_active AND asset_type = 'main_game'"),
    )

    op.create_table(
        "system_settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("data_type", sa.String(length=20), nullable=False, server_default="string"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("category", "name", name="uq_system_setting_category_name"),
    )
    op.create_index("ix_system_settings_category", "system_settings", ["category"], unique=False)
    op.execute(
        "INSERT INTO system_settings (category, name, value, data_type) VALUES "
        "('game', 'max_game_file_size_mb', '100', 'integer'), "
        "('game', 'allowed_game_file_types', 'zip,js,json,wasm,bin,data,unity3d,mem,jpg,png,mp3,ogg,wav', 'string')"
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("title", sa.String(length=300), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_id", sa.String(length=100), nullable=True),
        sa.Column("related_type", sa.String(length=100), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)

    op.create_table(
        "compatibility_reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("game_id", sa.Integer(), sa.ForeignKey("games.id"), nullable=False),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("game_assets.id"), nullable=False),
        sa.Column("reporter_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("browser", sa.String(length=100), nullable=True),
        sa.Column("os", sa.String(length=100), nullable=True),
        sa.Column("device", sa.String(length=100), nullable=True),
        sa.Column("status", sa.Enum("works", "issues", "broken", name="compatibilitystatus"), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_compatibility_reports_game_id", "compatibility_reports", ["game_id"], unique=False)
    op.create_index("ix_compatibility_reports_asset_id", "compatibility_reports", ["asset_id"], unique=False)

    op.create_table(
        "asset_audit_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("actor_user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("event_type", sa.String(length=100), nullable=False),
        sa.Column("game_id", sa.Integer(), nullable=True),
        sa.Column("asset_id", sa.Integer(), nullable=True),
        sa.Column("meta", sa.Text(), nullable=True),
        sa.Column("request_id", sa.String(length=100), nullable=True),
        sa.Column("ip", sa.String(length=80), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_asset_audit_events_actor_user_id", "asset_audit_events", ["actor_user_id"], unique=False)
    op.create_index("ix_asset_audit_events_event_type", "asset_audit_events", ["event_type"], unique=False)
    op.create_index("ix_asset_audit_events_game_id", "asset_audit_events", ["game_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_asset_audit_events_game_id", table_name="asset_audit_events")
    op.drop_index("ix_asset_audit_events_event_type", table_name="asset_audit_events")
    op.drop_index("ix_asset_audit_events_actor_user_id", table_name="asset_audit_events")
    op.drop_table("asset_audit_events")

    op.drop_index("ix_compatibility_reports_asset_id", table_name="compatibility_reports")
    op.drop_index("ix_compatibility_reports_game_id", table_name="compatibility_reports")
    op.drop_table("compatibility_reports")

    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_system_settings_category", table_name="system_settings")
    op.drop_table("system_settings")

    op.drop_index("uq_game_assets_active_main_game", table_name="game_assets")
    op.drop_index("ix_game_assets_game_type_active", table_name="game_assets")
    op.drop_index("ix_game_assets_checksum", table_name="game_assets")
    op.drop_index("ix_game_assets_game_id", table_name="game_assets")
    op.drop_table("game_assets")

    op.drop_index("ix_games_developer_id", table_name="games")
    op.drop_table("games")

    op.drop_index("ix_users_role", table_name="users")
    op.drop_index("ix_users_name", table_name="users")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS compatibilitystatus")
    op.execute("DROP TYPE IF EXISTS assettype")
    op.execute("DROP TYPE IF EXISTS userrole")
