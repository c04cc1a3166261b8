from gamehost.routers import developer_games, game_files, games, health

__all__ = [
    "developer_games",
    "game_files",
    "games",
    "health",
]
