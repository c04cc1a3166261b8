from __future__ import annotations

import json

from fastapi import Request
from sqlalchemy.orm import Session

from gamehost.core.rate_limit import client_ip
from gamehost.models.audit import AssetAuditEvent


def request_id(request: Request | None) -> str | None:
    rid = getattr(getattr(request, "state", None), "request_id", None)
    rid = str(rid or "").strip()
    return rid or None


def audit_log(
    *,
    db: Session,
    request: Request | None,
    event_type: str,
    actor_user_id=None,
    game_id: int | None = None,
    asset_id: int | None = None,
    meta: dict | str | None = None,
) -> None:
    """Stage an audit row on ``db``; the caller owns the commit."""

    if isinstance(meta, dict):
        meta_str = json.dumps(meta, ensure_ascii=False)
    elif isinstance(meta, str):
        meta_str = meta
    else:
        meta_str = None

    db.add(
        AssetAuditEvent(
            actor_user_id=actor_user_id,
            event_type=str(event_type),
            game_id=game_id,
            asset_id=asset_id,
            meta=meta_str,
            request_id=request_id(request),
            ip=client_ip(request) if request is not None else None,
        )
    )
