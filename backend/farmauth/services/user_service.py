"""User service - credential store for accounts"""

from functools import lru_cache

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Optional
from farmauth.models.user import User
from farmauth.core.security import get_password_hash, verify_password, utcnow
from farmauth.core.exceptions import DuplicateUserError
import logging

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    # Checked when the email is unknown so both paths pay for one bcrypt check.
    return get_password_hash("not-a-real-password")


class UserService:
    """Service for user management"""

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Look up a user by (already normalized) email"""
        return db.query(User).filter(User.email == email.lower()).first()

    @staticmethod
    def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def create_user(db: Session, email: str, password: str, name: str) -> User:
        """
        Create new user

        Args:
            db: Database session
            email: Normalized email
            password: Plain password (already checked against the policy)
            name: Display name

        Returns:
            Created user

        Raises:
            DuplicateUserError: Email already registered
        """
        email = email.lower()
        if UserService.get_user_by_email(db, email):
            raise DuplicateUserError()

        user = User(
            email=email,
            password_hash=get_password_hash(password),
            name=name,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent signup for the same email
            db.rollback()
            raise DuplicateUserError()
        db.refresh(user)

        logger.info(f"Created user: {user.id}")
        return user

    @staticmethod
    def verify_credentials(db: Session, email: str, password: str) -> Optional[User]:
        """
        Check an email/password pair

        Returns:
            The user when the password matches, otherwise None. Unknown email
            and wrong password are not distinguished.
        """
        user = UserService.get_user_by_email(db, email)
        if user is None:
            verify_password(password, _dummy_password_hash())
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    @staticmethod
    def record_login(db: Session, user: User) -> None:
        user.last_login = utcnow()
        db.commit()

    @staticmethod
    def set_password(db: Session, user: User, new_password: str) -> User:
        """Replace the password hash and invalidate outstanding access tokens"""
        user.password_hash = get_password_hash(new_password)
        user.session_version = (user.session_version or 1) + 1
        db.commit()
        db.refresh(user)
        logger.info(f"Password changed for user: {user.id}")
        return user


user_service = UserService()
