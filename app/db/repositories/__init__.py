from app.db.repositories.user_repository import UserRepository
from app.db.repositories.paste_repository import (
    PasteRepository, PasteInviteRepository, PasteVersionRepository, PasteViewRepository
)
from app.db.repositories.stats_repository import PasteStatsRepository

__all__ = [
    "UserRepository",
    "PasteRepository",
    "PasteInviteRepository",
    "PasteVersionRepository",
    "PasteViewRepository",
    "PasteStatsRepository",
]
