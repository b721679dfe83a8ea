"""
User model.
"""

from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, StandardMixin


class User(Base, StandardMixin):
    """
    Staff or beneficiary account.

    Identity is established elsewhere; this engine only needs a stable id.
    ``role`` is a denormalised copy of the user's primary approved grant,
    kept for legacy screens. Authorization never reads it.
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        index=True,
    )
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Derived from role assignments, see RBACService._sync_primary_role
    role: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<User {self.name}>"
