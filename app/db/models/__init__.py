from app.db.models.user import User
from app.db.models.paste import Paste, PasteInvite, PasteVersion, PasteView

__all__ = [
    "User",
    "Paste",
    "PasteInvite",
    "PasteVersion",
    "PasteView",
]
