from __future__ import annotations

import logging
import shutil
from datetime import datetime, timedelta, timezone
from itertools import groupby

from rq import get_current_job
from sqlalchemy import select
from sqlalchemy.orm import Session

from gamehost.core.config import settings
from gamehost.core.errors import AssetServiceError
from gamehost.db import session as db_session
from gamehost.models.game_asset import GameAsset
from gamehost.services.blob_store import BlobStore, get_blob_store
from gamehost.services.unpack_cache import extraction_root


log = logging.getLogger(__name__)

RETENTION_KEEP_ALL = "keep_all"
RETENTION_PURGE_SUPERSEDED = "purge_superseded"


def _aware(ts: datetime | None) -> datetime | None:
    if ts is None:
        return None
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def select_purgeable(
    db: Session,
    *,
    keep_versions: int,
    min_age_hours: int,
    now: datetime | None = None,
) -> list[GameAsset]:
    """Superseded assets eligible for purging.

    Per ``(game_id, asset_type)`` the newest ``keep_versions`` inactive assets
    are retained, as is anything uploaded less than ``min_age_hours`` ago.
    Active and already purged rows are never returned.
    """

    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(hours=max(0, int(min_age_hours)))

    rows = db.scalars(
        select(GameAsset)
        .where(GameAsset.is_active.is_(False), GameAsset.purged_at.is_(None))
        .order_by(GameAsset.game_id, GameAsset.asset_type, GameAsset.uploaded_at.desc(), GameAsset.id.desc())
    ).all()

    out: list[GameAsset] = []
    for _, group in groupby(rows, key=lambda a: (a.game_id, a.asset_type)):
        for idx, asset in enumerate(group):
            if idx < max(0, int(keep_versions)):
                continue
            uploaded = _aware(asset.uploaded_at)
            if uploaded is not None and uploaded > cutoff:
                continue
            out.append(asset)
    return out


def purge_superseded_assets(
    db: Session,
    *,
    store: BlobStore,
    mode: str | None = None,
    keep_versions: int | None = None,
    min_age_hours: int | None = None,
) -> dict:
    eff_mode = str(mode or settings.asset_retention_mode or RETENTION_KEEP_ALL).strip().lower()
    if eff_mode != RETENTION_PURGE_SUPERSEDED:
        return {"ok": True, "mode": eff_mode, "purged_assets": 0, "purged_bytes": 0}

    keep = int(settings.asset_retention_keep_versions if keep_versions is None else keep_versions)
    age = int(settings.asset_retention_min_age_hours if min_age_hours is None else min_age_hours)
    candidates = select_purgeable(db, keep_versions=keep, min_age_hours=age)

    purged = 0
    purged_bytes = 0
    failed = 0
    for asset in candidates:
        try:
            store.delete(asset.file_path)
        except AssetServiceError:
            log.exception("retention: blob delete failed: asset_id=%s path=%s", asset.id, asset.file_path)
            failed += 1
            continue

        bundle = extraction_root(settings.resolved_extract_root, asset.game_id, asset.id)
        shutil.rmtree(bundle, ignore_errors=True)

        asset.purged_at = datetime.now(timezone.utc)
        db.commit()
        purged += 1
        purged_bytes += int(asset.file_size_bytes or 0)

    return {
        "ok": True,
        "mode": eff_mode,
        "keep_versions": keep,
        "min_age_hours": age,
        "purged_assets": purged,
        "purged_bytes": purged_bytes,
        "failed": failed,
    }


def purge_superseded_assets_job(*, mode: str | None = None) -> dict:
    """RQ entry point. Safe to run repeatedly; purged rows are skipped."""

    try:
        job = get_current_job()
    except Exception:
        job = None

    with db_session.SessionLocal() as db:
        out = purge_superseded_assets(db, store=get_blob_store(), mode=mode)

    if job is not None:
        try:
            meta = dict(job.meta or {})
            meta.update(out)
            job.meta = meta
            job.save_meta()
        except Exception:
            log.warning("retention: failed to save job meta", exc_info=True)

    log.info(
        "purge_superseded_assets_job: mode=%s purged_assets=%s purged_bytes=%s",
        out.get("mode"),
        out.get("purged_assets"),
        out.get("purged_bytes"),
    )
    return out
