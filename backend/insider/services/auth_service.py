"""
Authentication service for user management and sessions
"""
import secrets
from datetime import timedelta
from typing import Optional
from uuid import UUID

import bcrypt
from sqlalchemy.orm import Session

from insider.core.config import get_settings
from insider.core.errors import NotFoundError, ValidationError
from insider.core.logging_config import LoggingConfig
from insider.core.utils import utcnow
from insider.models.user import Session as UserSession
from insider.models.user import User, UserRole

logger = LoggingConfig.get_logger(__name__)


class AuthService:
    """Service for user authentication and session management"""

    def __init__(self, db: Session):
        self.db = db
        self.session_duration_hours = get_settings().session_duration_hours

    def register_user(
        self,
        username: str,
        email: str,
        password: str,
        name: Optional[str] = None,
        role: str = UserRole.USER.value
    ) -> User:
        """
        Register a new user

        Raises:
            ValidationError: If username or email already exists
        """
        if self.db.query(User).filter(User.username == username).first():
            raise ValidationError(f"Username '{username}' already exists")

        if self.db.query(User).filter(User.email == email).first():
            raise ValidationError(f"Email '{email}' already exists")

        user = User(
            username=username,
            email=email,
            name=name,
            password_hash=self._hash_password(password),
            role=role,
            is_active=True
        )

        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"Registered new user: {username} (role: {role})")
        return user

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """
        Authenticate a user by username (or email) and password

        Returns:
            User object if authentication successful, None otherwise
        """
        user = self.db.query(User).filter(
            (User.username == username) | (User.email == username)
        ).first()

        if not user:
            logger.warning(f"Authentication failed: user '{username}' not found")
            return None

        if not user.is_active:
            logger.warning(f"Authentication failed: user '{username}' is inactive")
            return None

        if not self._verify_password(password, user.password_hash):
            logger.warning(f"Authentication failed: invalid password for user '{username}'")
            return None

        user.last_login = utcnow()
        self.db.commit()

        logger.info(f"User '{username}' authenticated successfully")
        return user

    def create_session(self, user_id: UUID, duration_hours: Optional[int] = None) -> UserSession:
        """Create a new login session for a user"""
        duration = duration_hours or self.session_duration_hours
        session = UserSession(
            user_id=user_id,
            token=secrets.token_urlsafe(32),
            expires_at=utcnow() + timedelta(hours=duration)
        )

        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)

        logger.info(f"Created session for user {user_id}")
        return session

    def validate_session(self, token: str) -> Optional[User]:
        """
        Validate a session token and return the associated user

        Expired sessions are deleted on use.
        """
        session = self.db.query(UserSession).filter(UserSession.token == token).first()
        if not session:
            return None

        if session.expires_at < utcnow():
            logger.info(f"Session {session.id} expired")
            self.db.delete(session)
            self.db.commit()
            return None

        session.last_activity = utcnow()
        self.db.commit()

        user = self.db.query(User).filter(User.id == session.user_id).first()
        if not user or not user.is_active:
            return None
        return user

    def logout(self, token: str) -> bool:
        """Invalidate a session; returns whether one was found"""
        session = self.db.query(UserSession).filter(UserSession.token == token).first()
        if not session:
            return False

        self.db.delete(session)
        self.db.commit()
        logger.info(f"Session {session.id} invalidated")
        return True

    def cleanup_expired_sessions(self) -> int:
        """Remove all expired sessions, returning how many were deleted"""
        count = self.db.query(UserSession).filter(
            UserSession.expires_at < utcnow()
        ).delete(synchronize_session=False)
        self.db.commit()
        if count > 0:
            logger.info(f"Cleaned up {count} expired sessions")
        return count

    def set_api_key(self, user: User, api_key: Optional[str]) -> User:
        """Store or clear the user's personal Anthropic API key"""
        user.anthropic_api_key = api_key or None
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"{'Set' if api_key else 'Cleared'} personal API key for user {user.id}")
        return user

    def set_role(self, user_id: UUID, role: str) -> User:
        """Change a user's role"""
        if role not in [r.value for r in UserRole]:
            raise ValidationError(f"Invalid role. Allowed roles: {[r.value for r in UserRole]}")
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        user.role = role
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User {user.username} role set to {role}")
        return user

    def _hash_password(self, password: str) -> str:
        """Hash a password using bcrypt"""
        hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt())
        return hashed.decode('utf-8')

    def _verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against a hash"""
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
