"""ID helpers."""

import secrets
import string

PASTE_ID_LENGTH = 8
PASTE_ID_ALPHABET = string.ascii_letters + string.digits + "_-"


def new_paste_id(length: int = PASTE_ID_LENGTH) -> str:
    """Generate a short URL-safe random paste id."""
    return "".join(secrets.choice(PASTE_ID_ALPHABET) for _ in range(length))
