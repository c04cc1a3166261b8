import enum
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Enum, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from gamehost.db.base import Base


class AssetType(str, enum.Enum):
    main_game = "main_game"
    texture = "texture"
    sound = "sound"
    model = "model"
    script = "script"
    other = "other"


class GameAsset(Base):
    __tablename__ = "game_assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[int] = mapped_column(Integer, ForeignKey("games.id"), index=True)
    asset_type: Mapped[AssetType] = mapped_column(Enum(AssetType))

    file_name: Mapped[str] = mapped_column(String(400))
    file_path: Mapped[str] = mapped_column(String(1000))
    file_size_bytes: Mapped[int] = mapped_column(BigInteger)
    file_extension: Mapped[str] = mapped_column(String(32))
    mime_type: Mapped[str | None] = mapped_column(String(200), nullable=True)
    checksum: Mapped[str] = mapped_column(String(64), index=True)
    version: Mapped[str | None] = mapped_column(String(20), nullable=True)

    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    is_compressed: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    purged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_game_assets_game_type_active", "game_id", "asset_type", "is_active"),
        # At most one active main build per game.
        Index(
            "uq_game_assets_active_main_game",
            "game_id",
            unique=True,
            postgresql_where=text("is_active AND asset_type = 'main_game'"),
            sqlite_where=text("is_active = 1 AND asset_type = 'main_game'"),
        ),
    )
