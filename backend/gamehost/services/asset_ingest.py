from __future__ import annotations

import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import BinaryIO

from fastapi import Request
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from gamehost.core.audit_log import audit_log
from gamehost.core.errors import AssetServiceError, ValidationFailed
from gamehost.models.game import Game
from gamehost.models.game_asset import AssetType, GameAsset
from gamehost.models.user import User
from gamehost.services.asset_policy import load_asset_type_policy
from gamehost.services.blob_store import BlobStore, StoredBlob
from gamehost.services.games import get_owned_game


log = logging.getLogger(__name__)

VERSION_MAX_LENGTH = 20

_ARCHIVE_MAGIC = (b"PK\x03\x04", b"PK\x05\x06", b"\x1f\x8b")


@dataclass
class IncomingFile:
    filename: str
    stream: BinaryIO
    content_type: str | None = None
    size: int | None = None


def parse_asset_type(value) -> AssetType:
    raw = str(getattr(value, "value", value) or "").strip()
    if not raw:
        raise ValidationFailed("asset_type is required", details={"field": "asset_type"})
    try:
        return AssetType(raw)
    except ValueError as e:
        allowed = ", ".join(t.value for t in AssetType)
        raise ValidationFailed(
            f"asset_type must be one of: {allowed}", details={"field": "asset_type"}
        ) from e


def _clean_version(version: str | None) -> str | None:
    v = str(version or "").strip()
    if not v:
        return None
    if len(v) > VERSION_MAX_LENGTH:
        raise ValidationFailed(
            f"version may not be greater than {VERSION_MAX_LENGTH} characters",
            details={"field": "version"},
        )
    return v


def _file_extension(filename: str) -> str:
    return PurePosixPath(str(filename).replace("\\", "/")).suffix.lstrip(".").lower()


def _stream_size(upload: IncomingFile) -> int | None:
    if upload.size is not None:
        return int(upload.size)
    stream = upload.stream
    try:
        pos = stream.tell()
        stream.seek(0, os.SEEK_END)
        end = stream.tell()
        stream.seek(pos)
        return int(end - pos)
    except (AttributeError, OSError, ValueError):
        return None


def activate_and_supersede(
    db: Session,
    *,
    game_id: int,
    asset: GameAsset,
    version_label: str | None,
) -> tuple[GameAsset, int]:
    """Insert ``asset`` as the active version inside the current transaction.

    The owning game row is locked first so concurrent uploads for the same
    game serialise here. For ``main_game`` every currently active main build is
    swept to inactive before the insert. Returns the asset and the number of
    superseded rows; the caller commits.
    """

    game = db.scalar(
        select(Game)
        .where(Game.id == int(game_id))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if game is None:
        raise ValidationFailed("game not found")

    superseded = 0
    if asset.asset_type == AssetType.main_game:
        res = db.execute(
            update(GameAsset)
            .where(
                GameAsset.game_id == game.id,
                GameAsset.asset_type == AssetType.main_game,
                GameAsset.is_active.is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        superseded = int(res.rowcount or 0)

    asset.game_id = game.id
    asset.is_active = True
    asset.version = version_label or game.version
    db.add(asset)

    if asset.asset_type == AssetType.main_game and version_label:
        game.version = version_label
        game.last_updated = datetime.now(timezone.utc)

    db.flush()
    return asset, superseded


def ingest_asset(
    db: Session,
    *,
    user: User,
    game_id: int,
    asset_type,
    upload: IncomingFile | None,
    store: BlobStore,
    version: str | None = None,
    request: Request | None = None,
) -> GameAsset:
    game = get_owned_game(db, user=user, game_id=game_id)
    game_id = int(game.id)

    at = parse_asset_type(asset_type)
    version_label = _clean_version(version)
    if upload is None or not str(upload.filename or "").strip():
        raise ValidationFailed("asset_file is required", details={"field": "asset_file"})

    policy = load_asset_type_policy(db, at)
    size = _stream_size(upload)
    if size is not None:
        policy.check_size(size)

    extension = _file_extension(upload.filename)
    policy.check_extension(extension)

    file_name = PurePosixPath(str(upload.filename).replace("\\", "/")).name
    mime_type = upload.content_type or mimetypes.guess_type(file_name)[0] or "application/octet-stream"
    suggested_path = f"games/{game_id}/assets/{uuid.uuid4().hex}.{extension}"

    try:
        blob: StoredBlob = store.store(
            upload.stream,
            suggested_path,
            max_bytes=policy.max_size_bytes,
            content_type=mime_type,
        )
    except ValidationFailed:
        raise ValidationFailed(
            f"File size exceeds the maximum allowed size of {policy.max_size_mb}MB",
            details={"field": "asset_file", "max_size_mb": policy.max_size_mb},
        ) from None

    asset = GameAsset(
        asset_type=at,
        file_name=file_name,
        file_path=blob.path,
        file_size_bytes=int(blob.size_bytes),
        file_extension=extension,
        mime_type=mime_type,
        checksum=blob.checksum,
        uploaded_at=datetime.now(timezone.utc),
        is_compressed=bool(blob.head.startswith(_ARCHIVE_MAGIC)),
    )

    try:
        asset, superseded = activate_and_supersede(db, game_id=game_id, asset=asset, version_label=version_label)
        audit_log(
            db=db,
            request=request,
            event_type="asset_uploaded",
            actor_user_id=user.id,
            game_id=game_id,
            asset_id=asset.id,
            meta={
                "asset_type": at.value,
                "checksum": blob.checksum,
                "size": int(blob.size_bytes),
                "superseded": superseded,
            },
        )
        db.commit()
    except Exception:
        db.rollback()
        try:
            store.delete(blob.path)
        except AssetServiceError:
            log.warning("orphaned blob after failed ingest: path=%s", blob.path)
        raise

    db.refresh(asset)
    log.info(
        "asset ingested: game_id=%s asset_id=%s type=%s size=%s checksum=%s superseded=%s",
        game_id,
        asset.id,
        at.value,
        asset.file_size_bytes,
        asset.checksum,
        superseded,
    )
    return asset


def list_assets(
    db: Session,
    *,
    game_id: int,
    asset_type: AssetType | None = None,
    active_only: bool = False,
) -> list[GameAsset]:
    stmt = select(GameAsset).where(GameAsset.game_id == int(game_id))
    if asset_type is not None:
        stmt = stmt.where(GameAsset.asset_type == asset_type)
    if active_only:
        stmt = stmt.where(GameAsset.is_active.is_(True))
    return list(db.scalars(stmt.order_by(GameAsset.uploaded_at.desc(), GameAsset.id.desc())).all())
