from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from gamehost.core.config import settings
from gamehost.core.errors import NotFound
from gamehost.core.security import get_optional_user
from gamehost.db.session import get_db
from gamehost.models.game import Game
from gamehost.models.game_asset import AssetType
from gamehost.models.user import User, UserRole
from gamehost.services.games import active_main_asset, get_game_asset
from gamehost.services.static_gateway import resolve_static_file
from gamehost.services.unpack_cache import extraction_root, is_extracted

router = APIRouter(tags=["game-files"])


def _authorize(db: Session, user: User | None, game_id: int, asset_id: int) -> None:
    game = db.get(Game, int(game_id))
    if game is None:
        raise NotFound("game not found")
    asset = get_game_asset(db, game_id=game.id, asset_id=asset_id)
    if asset.asset_type != AssetType.main_game:
        raise NotFound("asset not found")

    if user is not None and (user.role == UserRole.admin or game.developer_id == user.id):
        return

    # Everyone else only sees the live build of a published game.
    active = active_main_asset(db, game_id=game.id) if game.is_published else None
    if active is None or int(active.id) != int(asset.id):
        raise NotFound("game not found")


def _serve(game_id: int, asset_id: int, path: str | None) -> FileResponse:
    root = extraction_root(settings.resolved_extract_root, game_id, asset_id)
    if not is_extracted(root):
        raise NotFound("game bundle is not prepared")

    found = resolve_static_file(root, path)
    return FileResponse(found.path, media_type=found.media_type, headers=found.headers)


@router.get("/game-test/{game_id}/{asset_id}/{path:path}")
def game_test_file(
    game_id: int,
    asset_id: int,
    path: str,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    _authorize(db, user, game_id, asset_id)
    return _serve(game_id, asset_id, path)


@router.get("/game-play/{game_id}/{asset_id}/{path:path}")
def game_play_file(
    game_id: int,
    asset_id: int,
    path: str,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
):
    _authorize(db, user, game_id, asset_id)
    return _serve(game_id, asset_id, path)
