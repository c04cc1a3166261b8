from gamehost.models.user import User, UserRole
from gamehost.models.game import Game
from gamehost.models.game_asset import AssetType, GameAsset
from gamehost.models.system_setting import SystemSetting
from gamehost.models.notification import Notification
from gamehost.models.compatibility_report import CompatibilityReport, CompatibilityStatus
from gamehost.models.audit import AssetAuditEvent

__all__ = [
    "User",
    "UserRole",
    "Game",
    "AssetType",
    "GameAsset",
    "SystemSetting",
    "Notification",
    "CompatibilityReport",
    "CompatibilityStatus",
    "AssetAuditEvent",
]
