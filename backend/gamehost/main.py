import uuid
import time
import json
import logging
import threading
from datetime import datetime
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gamehost.core.audit_log import request_id as _request_id
from gamehost.core.config import settings
from gamehost.core.errors import AssetServiceError
from gamehost.core.redis_client import get_redis
from gamehost.core.queue import get_queue
from gamehost.services.retention_jobs import purge_superseded_assets_job
from gamehost.routers import developer_games, game_files, games, health

_GAME_FILE_PREFIXES = ("/game-test/", "/game-play/")


def create_app() -> FastAPI:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    app = FastAPI(title="GameHost Asset API", version="1.0.0")

    logger = logging.getLogger("gamehost")

    allow_origins = [o.strip() for o in str(settings.cors_allow_origins or "").split(",") if o.strip()]
    if "*" in allow_origins:
        raise RuntimeError("CORS_ALLOW_ORIGINS must not include '*' when allow_credentials=true")

    is_prod = (settings.app_env or "").strip().lower() in {"prod", "production"}

    def _error(status_code: int, error_code: str, error_message: str, rid: str | None, headers=None) -> JSONResponse:
        return JSONResponse(
            status_code=int(status_code),
            content={
                "ok": False,
                "error_code": error_code,
                "error_message": error_message,
                "request_id": rid,
            },
            headers=headers,
        )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        t0 = time.perf_counter()
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = rid
        status_code: int | None = None
        path = getattr(getattr(request, "url", None), "path", "")
        try:
            origin = (request.headers.get("origin") or "").strip()
            if request.method in {"POST", "PUT", "PATCH", "DELETE"} and origin and origin not in allow_origins:
                response = _error(403, "forbidden", "invalid origin", rid)
            else:
                response = await call_next(request)
            status_code = int(getattr(response, "status_code", 0) or 0)
        except Exception:
            status_code = 500
            raise
        finally:
            if not path.startswith("/health") and not path.startswith(_GAME_FILE_PREFIXES):
                logger.info(
                    json.dumps(
                        {
                            "ts": datetime.utcnow().isoformat(),
                            "rid": rid,
                            "user_id": getattr(getattr(request, "state", None), "user_id", None),
                            "method": request.method,
                            "path": path,
                            "status": status_code,
                            "duration_ms": int((time.perf_counter() - t0) * 1000),
                        },
                        ensure_ascii=False,
                    )
                )
        response.headers["X-Request-ID"] = rid

        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if path.startswith(_GAME_FILE_PREFIXES):
            # Builds are embedded by the site frontend in an iframe.
            response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
        else:
            response.headers.setdefault("X-Frame-Options", "DENY")
            response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
            response.headers.setdefault("Cross-Origin-Resource-Policy", "same-origin")
        if is_prod:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response

    @app.exception_handler(AssetServiceError)
    async def asset_error_handler(request: Request, exc: AssetServiceError):
        rid = _request_id(request)
        if int(exc.status_code) >= 500:
            logger.error("asset pipeline error: code=%s rid=%s message=%s", exc.error_code, rid, exc.message)
        return _error(exc.status_code, exc.error_code, exc.message, rid)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        rid = _request_id(request)
        detail = exc.detail
        if isinstance(detail, dict):
            error_code = str(detail.get("error_code") or "http_error")
            error_message = str(detail.get("error_message") or detail.get("detail") or "request failed")
        else:
            error_code = "forbidden" if int(exc.status_code) == 403 else "unauthorized" if int(exc.status_code) == 401 else "not_found" if int(exc.status_code) == 404 else "http_error"
            error_message = str(detail or "request failed")

        return _error(exc.status_code, error_code, error_message, rid, headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        rid = _request_id(request)
        logger.exception("unhandled exception", extra={"rid": rid})
        return _error(500, "internal_error", "internal server error", rid)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"] if is_prod else ["*"],
        allow_headers=["authorization", "content-type", "x-request-id"] if is_prod else ["*"],
    )

    app.include_router(health.router)
    app.include_router(developer_games.router)
    app.include_router(games.router)
    app.include_router(game_files.router)

    def _start_retention_scheduler() -> None:
        interval_seconds = max(60, int(settings.asset_retention_interval_minutes) * 60)

        def _tick() -> None:
            try:
                r = get_redis()
                lock_key = "locks:asset_retention"
                lock_ttl = max(60, interval_seconds - 5)

                acquired = r.set(lock_key, "1", nx=True, ex=int(lock_ttl))
                if not acquired:
                    return

                q = get_queue(str(settings.rq_queue_default))
                q.enqueue(
                    purge_superseded_assets_job,
                    mode=str(settings.asset_retention_mode),
                    job_timeout=60 * 30,
                    result_ttl=60 * 60,
                    failure_ttl=60 * 60 * 24,
                )
            except Exception:
                logger.warning("retention scheduler tick failed", exc_info=True)
            finally:
                t = threading.Timer(interval_seconds, _tick)
                t.daemon = True
                t.start()

        t0 = threading.Timer(10, _tick)
        t0.daemon = True
        t0.start()

    @app.on_event("startup")
    async def _startup_tasks() -> None:
        if bool(settings.enable_inprocess_scheduler):
            _start_retention_scheduler()

    return app

app = create_app()
