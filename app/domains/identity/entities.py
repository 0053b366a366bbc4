import uuid
from datetime import datetime
from typing import Optional

from app.core.security import get_password_hash, verify_password
from app.utils.time import utc_now

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


class User:
    """Registered account"""
    
    def __init__(
        self,
        uuid: uuid.UUID,
        email: str,
        username: str,
        password_hash: str,
        role: str = ROLE_USER,
        is_banned: bool = False,
        is_active: bool = True,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None
    ):
        self.uuid = uuid
        self.email = email
        self.username = username
        self.password_hash = password_hash
        self.role = role
        self.is_banned = is_banned
        self.is_active = is_active
        self.created_at = created_at or utc_now()
        self.updated_at = updated_at or utc_now()

    @property
    def id(self) -> uuid.UUID:
        return self.uuid

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
    
    def authenticate(self, password: str) -> bool:
        """Check the account password"""
        return verify_password(password, self.password_hash)
    
    def set_role(self, role: str) -> None:
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        self.role = role
        self.updated_at = utc_now()

    def ban(self) -> None:
        self.is_banned = True
        self.updated_at = utc_now()

    def unban(self) -> None:
        self.is_banned = False
        self.updated_at = utc_now()
    
    @classmethod
    def create_user(cls, email: str, username: str, password: str, role: str = ROLE_USER) -> "User":
        """Create a new user with a hashed password"""
        return cls(
            uuid=uuid.uuid4(),
            email=email,
            username=username,
            password_hash=get_password_hash(password),
            role=role,
        )
    
    def __eq__(self, other) -> bool:
        if not isinstance(other, User):
            return False
        return self.uuid == other.uuid
    
    def __repr__(self) -> str:
        return f"User(uuid={self.uuid}, username={self.username}, role={self.role})"
