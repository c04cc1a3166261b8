from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from gamehost.core.errors import Forbidden, NotFound, ValidationFailed
from gamehost.models.game import Game
from gamehost.models.game_asset import AssetType, GameAsset
from gamehost.models.user import User, UserRole


log = logging.getLogger(__name__)


def get_owned_game(db: Session, *, user: User, game_id: int) -> Game:
    game = db.scalar(select(Game).where(Game.id == int(game_id)))
    if game is None:
        raise NotFound("game not found")
    if user.role != UserRole.admin and game.developer_id != user.id:
        raise Forbidden("you do not own this game")
    return game


def get_published_game(db: Session, *, game_id: int) -> Game:
    game = db.scalar(select(Game).where(Game.id == int(game_id)))
    if game is None or not game.is_published:
        raise NotFound("game not found")
    return game


def get_game_asset(db: Session, *, game_id: int, asset_id: int) -> GameAsset:
    asset = db.scalar(
        select(GameAsset).where(GameAsset.id == int(asset_id), GameAsset.game_id == int(game_id))
    )
    if asset is None:
        raise NotFound("asset not found")
    return asset


def active_main_asset(db: Session, *, game_id: int) -> GameAsset | None:
    return db.scalar(
        select(GameAsset)
        .where(
            GameAsset.game_id == int(game_id),
            GameAsset.asset_type == AssetType.main_game,
            GameAsset.is_active.is_(True),
        )
        .order_by(GameAsset.id.desc())
        .limit(1)
    )


def publish_game(db: Session, *, user: User, game_id: int) -> Game:
    game = get_owned_game(db, user=user, game_id=game_id)
    if active_main_asset(db, game_id=game.id) is None:
        raise ValidationFailed("Cannot publish: game requires a main game asset")

    game.is_published = True
    game.last_updated = datetime.now(timezone.utc)
    db.commit()
    db.refresh(game)
    log.info("game published: game_id=%s by=%s", game.id, user.id)
    return game


def unpublish_game(db: Session, *, user: User, game_id: int) -> Game:
    game = get_owned_game(db, user=user, game_id=game_id)
    game.is_published = False
    db.commit()
    db.refresh(game)
    log.info("game unpublished: game_id=%s by=%s", game.id, user.id)
    return game
