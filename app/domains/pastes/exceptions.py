class PasteNotFoundError(LookupError):
    """The referenced paste does not exist"""

    def __init__(self, paste_id: str):
        super().__init__(f"Paste not found: {paste_id}")
        self.paste_id = paste_id


class SlugTakenError(ValueError):
    """A custom slug collides with an existing paste id or slug"""

    def __init__(self, slug: str):
        super().__init__("Custom slug already taken")
        self.slug = slug


class AuthenticationRequiredError(PermissionError):
    """Anonymous caller denied; signing in might grant access"""


class PasteLimitExceededError(ValueError):
    """The owner already has the maximum number of pastes"""

    def __init__(self, limit: int):
        super().__init__(f"You have reached the maximum limit of {limit} pastes")
        self.limit = limit
