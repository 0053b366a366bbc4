import logging
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import pwd_context as default_pwd_context, truncate_password
from app.db.repositories.paste_repository import PasteRepository

logger = logging.getLogger(__name__)

# verified when a paste has no password so both cases cost one bcrypt check
DUMMY_HASH = default_pwd_context.hash("paste-password-timing-placeholder")


class PasswordGate:
    """Checks a supplied password against the paste's stored hash"""

    def __init__(self, session: AsyncSession, pwd_context: Optional[CryptContext] = None):
        self.session = session
        self.paste_repository = PasteRepository(session)
        self.pwd_context = pwd_context or default_pwd_context

    async def validate(self, paste_id: str, password: str) -> bool:
        """True only when the paste has a password and it matches. Fails closed."""
        try:
            stored_hash = await self.paste_repository.get_password_hash(paste_id)
            is_valid = self.pwd_context.verify(truncate_password(password or ""), stored_hash or DUMMY_HASH)
            return bool(stored_hash) and is_valid
        except Exception as e:
            logger.error(f"Error validating password for paste {paste_id}: {e}")
            return False
