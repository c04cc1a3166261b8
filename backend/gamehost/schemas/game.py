from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class GamePublishResponse(BaseModel):
    ok: bool = True
    game_id: int
    is_published: bool
    version: str | None
    last_updated: datetime | None
