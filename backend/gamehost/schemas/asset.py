from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from gamehost.models.compatibility_report import CompatibilityStatus
from gamehost.models.game_asset import GameAsset


class GameAssetRead(BaseModel):
    asset_id: int
    game_id: int
    asset_type: str
    file_name: str
    file_path: str
    file_size_bytes: int
    file_extension: str
    mime_type: str | None
    checksum: str
    version: str | None
    uploaded_at: datetime
    is_compressed: bool
    is_active: bool
    purged_at: datetime | None = None

    @classmethod
    def from_asset(cls, asset: GameAsset) -> "GameAssetRead":
        return cls(
            asset_id=int(asset.id),
            game_id=int(asset.game_id),
            asset_type=asset.asset_type.value,
            file_name=asset.file_name,
            file_path=asset.file_path,
            file_size_bytes=int(asset.file_size_bytes),
            file_extension=asset.file_extension,
            mime_type=asset.mime_type,
            checksum=asset.checksum,
            version=asset.version,
            uploaded_at=asset.uploaded_at,
            is_compressed=bool(asset.is_compressed),
            is_active=bool(asset.is_active),
            purged_at=asset.purged_at,
        )


class AssetUploadResponse(BaseModel):
    ok: bool = True
    message: str = "Asset uploaded successfully"
    asset: GameAssetRead


class PrepareTestResponse(BaseModel):
    ok: bool = True
    test_url: str


class PlayUrlResponse(BaseModel):
    ok: bool = True
    play_url: str


class CompatibilityReportCreate(BaseModel):
    status: CompatibilityStatus
    browser: str | None = Field(default=None, max_length=100)
    os: str | None = Field(default=None, max_length=100)
    device: str | None = Field(default=None, max_length=100)
    notes: str | None = Field(default=None, max_length=5000)


class CompatibilityReportRead(BaseModel):
    id: int
    game_id: int
    asset_id: int
    status: str
    browser: str | None
    os: str | None
    device: str | None
    notes: str | None
    created_at: datetime
