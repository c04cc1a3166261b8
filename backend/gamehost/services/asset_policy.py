from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from gamehost.core.errors import ValidationFailed
from gamehost.models.game_asset import AssetType
from gamehost.services.settings_store import get_setting


log = logging.getLogger(__name__)

SETTINGS_CATEGORY = "game"
MAX_SIZE_SETTING = "max_game_file_size_mb"
ALLOWED_TYPES_SETTING = "allowed_game_file_types"

MAIN_GAME_MAX_SIZE_MB = 2048
DEFAULT_MAX_SIZE_MB = 100
DEFAULT_ALLOWED_TYPES = "zip,js,json,wasm,bin,data,unity3d,mem,jpg,png,mp3,ogg,wav"

_MB = 1024 * 1024


def parse_extensions(raw: str | None) -> frozenset[str]:
    return frozenset(
        e.strip().lower().lstrip(".") for e in str(raw or "").split(",") if e.strip().lstrip(".")
    )


@dataclass(frozen=True)
class AssetTypePolicy:
    asset_type: AssetType
    max_size_mb: int
    allowed_extensions: frozenset[str]

    @property
    def max_size_bytes(self) -> int:
        return int(self.max_size_mb) * _MB

    def check_size(self, size_bytes: int) -> None:
        if int(size_bytes) > self.max_size_bytes:
            raise ValidationFailed(
                f"File size exceeds the maximum allowed size of {self.max_size_mb}MB",
                details={"field": "asset_file", "max_size_mb": self.max_size_mb},
            )

    def check_extension(self, extension: str) -> None:
        ext = str(extension or "").strip().lower().lstrip(".")
        if ext not in self.allowed_extensions:
            raise ValidationFailed(
                f"File type '{ext}' is not allowed",
                details={"field": "asset_file", "allowed": sorted(self.allowed_extensions)},
            )


def _max_size_setting(db: Session) -> int:
    raw = get_setting(db, SETTINGS_CATEGORY, MAX_SIZE_SETTING)
    if raw is None:
        return DEFAULT_MAX_SIZE_MB
    try:
        value = int(float(raw))
    except (TypeError, ValueError):
        log.warning("ignoring invalid %s setting: %r", MAX_SIZE_SETTING, raw)
        return DEFAULT_MAX_SIZE_MB
    return value if value > 0 else DEFAULT_MAX_SIZE_MB


def load_asset_type_policy(db: Session, asset_type: AssetType) -> AssetTypePolicy:
    """Read the upload policy for ``asset_type`` from the settings store.

    Settings are read on every call; main game builds always get the large
    fixed ceiling regardless of the general size setting.
    """

    if asset_type == AssetType.main_game:
        max_mb = MAIN_GAME_MAX_SIZE_MB
    else:
        max_mb = _max_size_setting(db)

    allowed = parse_extensions(get_setting(db, SETTINGS_CATEGORY, ALLOWED_TYPES_SETTING))
    if not allowed:
        allowed = parse_extensions(DEFAULT_ALLOWED_TYPES)

    return AssetTypePolicy(asset_type=asset_type, max_size_mb=max_mb, allowed_extensions=allowed)
