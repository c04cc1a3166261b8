from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.orm import Session

from gamehost.core.audit_log import audit_log
from gamehost.core.rate_limit import rate_limit
from gamehost.core.security import require_roles
from gamehost.db.session import get_db
from gamehost.models.compatibility_report import CompatibilityReport
from gamehost.models.user import User, UserRole
from gamehost.schemas.asset import (
    AssetUploadResponse,
    CompatibilityReportCreate,
    CompatibilityReportRead,
    GameAssetRead,
    PrepareTestResponse,
)
from gamehost.schemas.game import GamePublishResponse
from gamehost.services.asset_ingest import IncomingFile, ingest_asset, list_assets, parse_asset_type
from gamehost.services.blob_store import get_blob_store
from gamehost.services.games import get_game_asset, get_owned_game, publish_game, unpublish_game
from gamehost.services.notifications import notify
from gamehost.services.unpack_cache import UnpackCache, build_test_url

router = APIRouter(prefix="/developer/games", tags=["developer-games"])

require_developer = require_roles(UserRole.developer)


@router.post("/{game_id}/assets", response_model=AssetUploadResponse, status_code=201)
def upload_asset(
    request: Request,
    game_id: int,
    asset_type: str | None = Form(default=None),
    version: str | None = Form(default=None),
    asset_file: UploadFile | None = File(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(require_developer),
    _: object = rate_limit(key_prefix="asset_upload", limit=30, window_seconds=60),
):
    upload = None
    if asset_file is not None:
        upload = IncomingFile(
            filename=asset_file.filename or "",
            stream=asset_file.file,
            content_type=asset_file.content_type,
            size=getattr(asset_file, "size", None),
        )

    asset = ingest_asset(
        db,
        user=user,
        game_id=game_id,
        asset_type=asset_type,
        upload=upload,
        version=version,
        store=get_blob_store(),
        request=request,
    )
    return AssetUploadResponse(asset=GameAssetRead.from_asset(asset))


@router.get("/{game_id}/assets", response_model=list[GameAssetRead])
def list_game_assets(
    game_id: int,
    asset_type: str | None = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(require_developer),
):
    game = get_owned_game(db, user=user, game_id=game_id)
    at = parse_asset_type(asset_type) if asset_type else None
    assets = list_assets(db, game_id=game.id, asset_type=at, active_only=active_only)
    return [GameAssetRead.from_asset(a) for a in assets]


def _prepare_test(request: Request, game_id: int, asset_id: int, db: Session, user: User) -> PrepareTestResponse:
    game = get_owned_game(db, user=user, game_id=game_id)
    asset = get_game_asset(db, game_id=game.id, asset_id=asset_id)

    UnpackCache(get_blob_store()).prepare(asset)

    audit_log(
        db=db,
        request=request,
        event_type="asset_test_prepared",
        actor_user_id=user.id,
        game_id=game.id,
        asset_id=asset.id,
    )
    db.commit()
    return PrepareTestResponse(test_url=build_test_url(game.id, asset.id))


@router.post("/{game_id}/assets/{asset_id}/prepare-test", response_model=PrepareTestResponse)
def prepare_test(
    request: Request,
    game_id: int,
    asset_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_developer),
    _: object = rate_limit(key_prefix="asset_prepare_test", limit=60, window_seconds=60),
):
    return _prepare_test(request, game_id, asset_id, db, user)


@router.get("/{game_id}/assets/{asset_id}/test", response_model=PrepareTestResponse)
def test_game(
    request: Request,
    game_id: int,
    asset_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_developer),
    _: object = rate_limit(key_prefix="asset_prepare_test", limit=60, window_seconds=60),
):
    return _prepare_test(request, game_id, asset_id, db, user)


def _submit_report(
    game_id: int,
    asset_id: int,
    body: CompatibilityReportCreate,
    db: Session,
    user: User,
) -> CompatibilityReportRead:
    game = get_owned_game(db, user=user, game_id=game_id)
    asset = get_game_asset(db, game_id=game.id, asset_id=asset_id)

    report = CompatibilityReport(
        game_id=game.id,
        asset_id=asset.id,
        reporter_id=user.id,
        status=body.status,
        browser=body.browser,
        os=body.os,
        device=body.device,
        notes=body.notes,
    )
    db.add(report)
    db.commit()
    db.refresh(report)

    env = " / ".join(x for x in (body.browser, body.os, body.device) if x) or "unknown environment"
    notify(
        user_id=game.developer_id,
        type="compatibility_report",
        title=f"Compatibility report for {game.title}",
        message=f"Build {asset.version or asset.id} reported '{body.status.value}' on {env}.",
        related_id=asset.id,
        related_type="game_asset",
    )

    return CompatibilityReportRead(
        id=int(report.id),
        game_id=int(report.game_id),
        asset_id=int(report.asset_id),
        status=report.status.value,
        browser=report.browser,
        os=report.os,
        device=report.device,
        notes=report.notes,
        created_at=report.created_at,
    )


@router.post(
    "/{game_id}/assets/{asset_id}/compatibility-report",
    response_model=CompatibilityReportRead,
    status_code=201,
)
def compatibility_report(
    game_id: int,
    asset_id: int,
    body: CompatibilityReportCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_developer),
):
    return _submit_report(game_id, asset_id, body, db, user)


@router.post(
    "/{game_id}/assets/{asset_id}/test-report",
    response_model=CompatibilityReportRead,
    status_code=201,
)
def test_report(
    game_id: int,
    asset_id: int,
    body: CompatibilityReportCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_developer),
):
    return _submit_report(game_id, asset_id, body, db, user)


def _publish_response(game) -> GamePublishResponse:
    return GamePublishResponse(
        game_id=int(game.id),
        is_published=bool(game.is_published),
        version=game.version,
        last_updated=game.last_updated,
    )


@router.post("/{game_id}/publish", response_model=GamePublishResponse)
def publish(game_id: int, db: Session = Depends(get_db), user: User = Depends(require_developer)):
    return _publish_response(publish_game(db, user=user, game_id=game_id))


@router.post("/{game_id}/unpublish", response_model=GamePublishResponse)
def unpublish(game_id: int, db: Session = Depends(get_db), user: User = Depends(require_developer)):
    return _publish_response(unpublish_game(db, user=user, game_id=game_id))
