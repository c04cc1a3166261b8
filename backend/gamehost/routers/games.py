from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from gamehost.core.audit_log import audit_log
from gamehost.core.errors import NotFound
from gamehost.core.rate_limit import rate_limit
from gamehost.core.security import get_optional_user
from gamehost.db.session import get_db
from gamehost.models.user import User
from gamehost.schemas.asset import GameAssetRead, PlayUrlResponse
from gamehost.services.asset_ingest import list_assets
from gamehost.services.blob_store import get_blob_store
from gamehost.services.games import active_main_asset, get_game_asset, get_published_game
from gamehost.services.unpack_cache import UnpackCache, build_play_url

router = APIRouter(prefix="/games", tags=["games"])


@router.get("/{game_id}/assets", response_model=list[GameAssetRead])
def list_public_assets(game_id: int, db: Session = Depends(get_db)):
    game = get_published_game(db, game_id=game_id)
    return [GameAssetRead.from_asset(a) for a in list_assets(db, game_id=game.id, active_only=True)]


@router.post("/{game_id}/assets/{asset_id}/prepare-play", response_model=PlayUrlResponse)
def prepare_play(
    request: Request,
    game_id: int,
    asset_id: int,
    db: Session = Depends(get_db),
    user: User | None = Depends(get_optional_user),
    _: object = rate_limit(key_prefix="asset_prepare_play", limit=120, window_seconds=60),
):
    game = get_published_game(db, game_id=game_id)
    asset = get_game_asset(db, game_id=game.id, asset_id=asset_id)
    active = active_main_asset(db, game_id=game.id)
    if active is None or int(active.id) != int(asset.id):
        raise NotFound("asset not found")

    UnpackCache(get_blob_store()).prepare(asset)

    audit_log(
        db=db,
        request=request,
        event_type="asset_play_prepared",
        actor_user_id=getattr(user, "id", None),
        game_id=game.id,
        asset_id=asset.id,
    )
    db.commit()
    return PlayUrlResponse(play_url=build_play_url(game.id, asset.id))
