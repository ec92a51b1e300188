"""
UserService -- actor records and actor checks.

Responsibility:
    Create, look up, list and (de)activate users.  Also the single place
    that resolves an actor id into an authorised, active user for other
    services (``require_actor``).

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - username and email are unique (checked up front, then backed by the
      unique constraints inside a savepoint).
    - Only an active role_creator may create users or change is_active;
      ``actor_id=None`` on create means system bootstrap.
    - Users are never deleted.

Failure modes:
    - DuplicateUsernameError / DuplicateEmailError.
    - UserNotFoundError, UserInactiveError, ForbiddenDepartmentError for
      the acting user.
    - ValidationError on blank username/email or unknown department.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from orderflow_kernel.db.base import SYSTEM_ACTOR_ID
from orderflow_kernel.domain.dtos import UserInfo
from orderflow_kernel.domain.values import Department
from orderflow_kernel.exceptions import (
    DuplicateEmailError,
    DuplicateUsernameError,
    ForbiddenDepartmentError,
    UserInactiveError,
    UserNotFoundError,
    ValidationError,
)
from orderflow_kernel.logging_config import get_logger
from orderflow_kernel.models.user import User
from orderflow_kernel.services.base import BaseService

logger = get_logger("services.user")


class UserService(BaseService[User]):
    """Service for managing users (actors)."""

    def _to_dto(self, user: User) -> UserInfo:
        return UserInfo(
            id=user.id,
            username=user.username,
            email=user.email,
            department=Department(user.department),
            is_active=user.is_active,
            created_at=user.created_at,
        )

    def _get_by_id(self, user_id: UUID) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return user

    def get_by_id(self, user_id: UUID) -> UserInfo:
        """
        Get user by ID.

        Raises:
            UserNotFoundError: If the user doesn't exist.
        """
        return self._to_dto(self._get_by_id(user_id))

    def get_by_username(self, username: str) -> UserInfo:
        """
        Get user by username.

        Raises:
            UserNotFoundError: If the user doesn't exist.
        """
        user = self.find_by_username(username)
        if user is None:
            raise UserNotFoundError(username)
        return user

    def find_by_username(self, username: str) -> UserInfo | None:
        """Find user by username, returning None if not found."""
        stmt = select(User).where(User.username == username)
        user = self.session.execute(stmt).scalar_one_or_none()
        return self._to_dto(user) if user else None

    def list_users(self) -> list[UserInfo]:
        """All users, oldest first."""
        stmt = select(User).order_by(User.created_at, User.username)
        return [self._to_dto(u) for u in self.session.execute(stmt).scalars()]

    def require_actor(
        self,
        actor_id: UUID,
        action: str,
        *departments: Department,
    ) -> UserInfo:
        """
        Resolve ``actor_id`` to an active user in one of ``departments``.

        With no departments given, any active user passes.

        Raises:
            UserNotFoundError, UserInactiveError, ForbiddenDepartmentError.
        """
        actor = self.get_by_id(actor_id)
        if not actor.is_active:
            raise UserInactiveError(str(actor_id))
        if departments and actor.department not in departments:
            allowed = ", ".join(d.value for d in departments)
            raise ForbiddenDepartmentError(
                department=actor.department.value,
                action=action,
                reason=f"requires {allowed}",
            )
        return actor

    def create_user(
        self,
        username: str,
        email: str,
        department: Department | str,
        actor_id: UUID | None = None,
    ) -> UserInfo:
        """
        Create a new user.

        Args:
            username: Unique login name.
            email: Unique email address.
            department: One of the Department values.
            actor_id: Acting role_creator, or None for system bootstrap.

        Returns:
            Created UserInfo DTO.
        """
        if actor_id is not None:
            self.require_actor(actor_id, "create_user", Department.ROLE_CREATOR)

        username = (username or "").strip()
        email = (email or "").strip()
        if not username:
            raise ValidationError("username", "must not be blank")
        if not email:
            raise ValidationError("email", "must not be blank")
        try:
            department = Department(department)
        except ValueError:
            raise ValidationError("department", f"unknown department {department!r}")

        if self.session.execute(
            select(User.id).where(User.username == username)
        ).first() is not None:
            raise DuplicateUsernameError(username)
        if self.session.execute(
            select(User.id).where(User.email == email)
        ).first() is not None:
            raise DuplicateEmailError(email)

        user = User(
            username=username,
            email=email,
            department=department.value,
            is_active=True,
            created_by_id=actor_id or SYSTEM_ACTOR_ID,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(user)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            # Lost a race with a concurrent insert; report which key collided.
            if self.session.execute(
                select(User.id).where(User.username == username)
            ).first() is not None:
                raise DuplicateUsernameError(username)
            raise DuplicateEmailError(email)

        logger.info(
            "user_created",
            extra={
                "user_id": str(user.id),
                "username": username,
                "department": department.value,
            },
        )
        return self._to_dto(user)

    def set_active(self, user_id: UUID, is_active: bool, actor_id: UUID) -> UserInfo:
        """Activate or deactivate a user (role_creator only)."""
        self.require_actor(actor_id, "set_active", Department.ROLE_CREATOR)
        user = self._get_by_id(user_id)
        user.is_active = is_active
        user.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "user_active_changed",
            extra={"user_id": str(user_id), "is_active": is_active},
        )
        return self._to_dto(user)
