# Services are imported from app.domains.pastes.services directly; the ORM models
# import entities from this package, so it must stay free of repository imports.
from app.domains.pastes.entities import (
    Visibility, Paste, InvitedUser, VersionMeta, ForkedPasteData, ForkResult,
    TransferResult, ViewerInfo, PasteListPage, PasteViewResult,
)
from app.domains.pastes.exceptions import (
    PasteNotFoundError, SlugTakenError, AuthenticationRequiredError, PasteLimitExceededError
)

__all__ = [
    "Visibility", "Paste", "InvitedUser", "VersionMeta", "ForkedPasteData",
    "ForkResult", "TransferResult", "ViewerInfo", "PasteListPage", "PasteViewResult",
    "PasteNotFoundError", "SlugTakenError", "AuthenticationRequiredError", "PasteLimitExceededError",
]
