from __future__ import annotations

import logging

from gamehost.db import session as db_session
from gamehost.models.notification import Notification


log = logging.getLogger(__name__)


def notify(
    *,
    user_id,
    type: str,
    message: str,
    title: str | None = None,
    related_id=None,
    related_type: str | None = None,
) -> bool:
    """Append a notification for ``user_id`` in its own session.

    Fire-and-forget: failures are logged and reported as ``False``, never raised.
    """

    try:
        with db_session.SessionLocal() as db:
            db.add(
                Notification(
                    user_id=user_id,
                    type=str(type),
                    title=title,
                    message=str(message),
                    related_id=None if related_id is None else str(related_id),
                    related_type=related_type,
                    is_read=False,
                )
            )
            db.commit()
        return True
    except Exception:
        log.exception("failed to create notification: user_id=%s type=%s", user_id, type)
        return False
