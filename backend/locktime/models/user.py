"""User model."""
import enum

from sqlalchemy import Column, String, Boolean
from sqlalchemy import Enum as SQLEnum

from locktime.database import Base
from locktime.models.base import BaseModel


class UserRole(str, enum.Enum):
    """Role a user plays in every relationship they join."""
    KEYHOLDER = "KEYHOLDER"
    SUB = "SUB"

    @property
    def opposite(self) -> "UserRole":
        return UserRole.SUB if self is UserRole.KEYHOLDER else UserRole.KEYHOLDER


class UserStatus(str, enum.Enum):
    """Account standing, set by administrators."""
    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"


class User(Base, BaseModel):
    """
    User model representing platform users.

    Attributes:
        email: Unique email address
        display_name: Name shown to the partner
        country: Optional country, matched by partner search
        role: KEYHOLDER (privileged role, controls locks) or SUB
        status: active, suspended or banned
        is_admin: Whether the user can see admin statistics and listings
        is_verified: Whether the profile carries a verified badge
    """

    __tablename__ = "users"

    email = Column(String, unique=True, index=True, nullable=False)
    display_name = Column(String, nullable=False)
    country = Column(String, nullable=True)
    role = Column(
        SQLEnum(UserRole, name="user_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    status = Column(
        SQLEnum(UserStatus, name="user_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserStatus.ACTIVE,
        index=True,
    )
    is_admin = Column(Boolean, default=False, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)

    @property
    def is_active(self) -> bool:
        # status is None until the insert applies the column default
        return self.status is None or self.status == UserStatus.ACTIVE

    def __repr__(self):
        return f"<User(email='{self.email}', role='{self.role}', status='{self.status}')>"
