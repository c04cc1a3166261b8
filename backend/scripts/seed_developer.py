from __future__ import annotations

import argparse
import sys
import os

# Force /app into path for Docker compatibility
sys.path.append("/app")
# Also add current directory as fallback
sys.path.append(os.getcwd())

from sqlalchemy import select

from gamehost.core.security import create_access_token
from gamehost.db import session as db_session
from gamehost.models.game import Game
from gamehost.models.user import User, UserRole
from gamehost.services.asset_policy import (
    ALLOWED_TYPES_SETTING,
    DEFAULT_ALLOWED_TYPES,
    DEFAULT_MAX_SIZE_MB,
    MAX_SIZE_SETTING,
    SETTINGS_CATEGORY,
)
from gamehost.services.settings_store import get_setting, set_setting


def run(*, name: str, game_title: str | None, role: UserRole = UserRole.developer, token_minutes: int = 60 * 24) -> dict:
    """Create (or reuse) a user, optionally a game, and mint a bearer token.

    Also writes the default upload policy settings when they are missing so a
    fresh database accepts uploads right away.
    """

    with db_session.SessionLocal() as db:
        user = db.scalar(select(User).where(User.name == name))
        if user is None:
            user = User(name=name, role=role)
            db.add(user)
            db.flush()

        game_id = None
        if game_title:
            game = db.scalar(select(Game).where(Game.developer_id == user.id, Game.title == game_title))
            if game is None:
                game = Game(title=game_title, developer_id=user.id)
                db.add(game)
                db.flush()
            game_id = int(game.id)

        if get_setting(db, SETTINGS_CATEGORY, MAX_SIZE_SETTING) is None:
            set_setting(db, SETTINGS_CATEGORY, MAX_SIZE_SETTING, DEFAULT_MAX_SIZE_MB, data_type="integer")
        if get_setting(db, SETTINGS_CATEGORY, ALLOWED_TYPES_SETTING) is None:
            set_setting(db, SETTINGS_CATEGORY, ALLOWED_TYPES_SETTING, DEFAULT_ALLOWED_TYPES)

        db.commit()
        token = create_access_token(user_id=str(user.id), role=user.role.value, minutes=token_minutes)
        return {"user_id": str(user.id), "role": user.role.value, "game_id": game_id, "access_token": token}


def main() -> None:
    p = argparse.ArgumentParser()
    p.add_argument("--name", required=True, help="User name (unique)")
    p.add_argument("--game", default=None, help="Create a game with this title for the user")
    p.add_argument("--role", default=UserRole.developer.value, choices=[r.value for r in UserRole])
    p.add_argument("--token-minutes", type=int, default=60 * 24, help="Lifetime of the printed token")
    args = p.parse_args()

    out = run(name=args.name, game_title=args.game, role=UserRole(args.role), token_minutes=args.token_minutes)
    print(f"OK: user_id={out['user_id']} role={out['role']} game_id={out['game_id']}")
    print(out["access_token"])


if __name__ == "__main__":
    main()
