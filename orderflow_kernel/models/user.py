"""
Module: orderflow_kernel.models.user
Responsibility: ORM persistence for actors.  Every workflow operation is
    performed by a user, and the user's department decides what it may do.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py (vocabulary only).

Invariants enforced:
    - username and email are each unique.
    - department is one of the five Department values (ck_user_department).
    - Users are deactivated, never deleted; history rows reference them.
"""

from sqlalchemy import Boolean, CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from orderflow_kernel.db.base import TrackedBase
from orderflow_kernel.domain.values import Department

_DEPARTMENT_VALUES = ", ".join(f"'{d.value}'" for d in Department)


class User(TrackedBase):
    """
    An actor belonging to exactly one department.

    Non-goals:
        - No credentials are stored here; authentication happens upstream.
    """

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("username", name="uq_user_username"),
        UniqueConstraint("email", name="uq_user_email"),
        CheckConstraint(
            f"department IN ({_DEPARTMENT_VALUES})",
            name="ck_user_department",
        ),
        Index("idx_user_department", "department"),
    )

    username: Mapped[str] = mapped_column(String(100), nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    department: Mapped[str] = mapped_column(String(30), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.department})>"
