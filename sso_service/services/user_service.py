"""User service for user management"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sso_service.core.config import logger
from sso_service.core.errors import AuthError, ErrorKind
from sso_service.models.user import User
from sso_service.utils.crypto import SecretCodec
from sso_service.utils.timeutils import utcnow


class UserService:
    """Principal storage"""

    def __init__(self, codec: SecretCodec):
        self.codec = codec

    @staticmethod
    def normalize_email(email: str) -> str:
        return email.strip().lower()

    async def create_user(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
    ) -> User:
        """
        Create a new active, unverified user

        Args:
            db: Database session
            email: Normalized email address
            password: Plain text password (already checked against policy)
            first_name: Given name
            last_name: Family name

        Returns:
            Created user

        Raises:
            AuthError: ALREADY_EXISTS if the email is taken
        """
        if await self.get_by_email(db, email):
            raise AuthError(ErrorKind.ALREADY_EXISTS, "User with this email already exists")

        user = User(
            email=email,
            password_hash=self.codec.hash_password(password),
            first_name=first_name,
            last_name=last_name,
            is_active=True,
            is_verified=False,
        )
        db.add(user)

        try:
            await db.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration of the same email
            await db.rollback()
            raise AuthError(ErrorKind.ALREADY_EXISTS, "User with this email already exists")

        await db.refresh(user)

        logger.info(f"User created: {user.id}")

        return user

    async def get_by_id(self, db: AsyncSession, user_id: str) -> User | None:
        """
        Get user by ID

        Args:
            db: Database session
            user_id: User ID

        Returns:
            User or None if not found
        """
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, db: AsyncSession, email: str) -> User | None:
        """Get user by (normalized) email"""
        result = await db.execute(select(User).where(User.email == self.normalize_email(email)))
        return result.scalar_one_or_none()

    async def record_login(
        self,
        db: AsyncSession,
        user: User,
        ip_address: str | None = None,
    ) -> None:
        """Update last login time and address"""
        user.last_login_at = utcnow()
        user.last_login_ip = ip_address
        await db.commit()

    async def set_password(self, db: AsyncSession, user: User, new_password: str) -> None:
        """Replace the stored password hash"""
        user.password_hash = self.codec.hash_password(new_password)
        user.updated_at = utcnow()
        await db.commit()

        logger.info(f"Password changed for user {user.id}")

    async def set_active(self, db: AsyncSession, user: User, is_active: bool) -> None:
        user.is_active = is_active
        await db.commit()
