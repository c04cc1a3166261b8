from fastapi import APIRouter, HTTPException, Request
import hmac
from sqlalchemy import text

from gamehost.core.queue import get_queue
from gamehost.core.redis_client import get_redis
from gamehost.core.config import settings
from gamehost.db import session as db_session
from gamehost.services.blob_store import get_s3_client
from gamehost.services.retention_jobs import purge_superseded_assets_job

router = APIRouter(tags=["health"])


def _require_cron_secret(request: Request) -> None:
    secret = str(getattr(settings, "cron_secret", "") or "").strip()
    if not secret:
        raise HTTPException(status_code=404, detail="not found")

    provided = str(request.headers.get("x-cron-secret") or "").strip()
    if not provided or not hmac.compare_digest(provided, secret):
        raise HTTPException(status_code=403, detail="forbidden")


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/live")
def live():
    return {"status": "live"}


@router.get("/health/ready")
def ready():
    try:
        db = db_session.SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as e:
        raise HTTPException(status_code=503, detail="db not ready") from e

    try:
        r = get_redis()
        r.ping()
    except Exception as e:
        raise HTTPException(status_code=503, detail="redis not ready") from e

    if str(settings.storage_backend or "").strip().lower() == "s3":
        try:
            s3 = get_s3_client()
            s3.head_bucket(Bucket=settings.s3_bucket)
        except Exception as e:
            raise HTTPException(status_code=503, detail="s3 not ready") from e
    elif not settings.resolved_media_root.is_dir():
        raise HTTPException(status_code=503, detail="media root not ready")

    return {"status": "ready"}


@router.post("/health/cron/asset-retention")
def cron_asset_retention(request: Request):
    _require_cron_secret(request)

    interval_seconds = max(60, int(getattr(settings, "asset_retention_interval_minutes", 60)) * 60)
    lock_key = "locks:asset_retention"
    lock_ttl = max(60, interval_seconds - 5)

    r = get_redis()
    acquired = r.set(lock_key, "1", nx=True, ex=int(lock_ttl))
    if not acquired:
        return {"ok": True, "enqueued": False, "reason": "locked"}

    q = get_queue(str(settings.rq_queue_default))
    job = q.enqueue(
        purge_superseded_assets_job,
        mode=str(settings.asset_retention_mode),
        job_timeout=60 * 30,
        result_ttl=60 * 60,
        failure_ttl=60 * 60 * 24,
    )
    return {"ok": True, "enqueued": True, "job_id": str(job.id), "mode": str(settings.asset_retention_mode)}
