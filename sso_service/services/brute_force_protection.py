"""Brute-force protection service"""

from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sso_service.core.config import logger
from sso_service.models.lockout import LockoutRecord
from sso_service.services.notification_service import NotificationSink, safe_notify
from sso_service.utils.timeutils import ensure_aware, utcnow


class LockoutTracker:
    """Counts failed attempts per identity and applies temporary lockouts"""

    def __init__(
        self,
        threshold: int = 5,
        window: int = 900,
        duration: int = 900,
        notifier: NotificationSink | None = None,
    ):
        """
        Args:
            threshold: Failed attempts inside the window that trigger a lock
            window: Rolling window in seconds for counting failures
            duration: Lock duration in seconds
            notifier: Sink told about new lockouts
        """
        self.threshold = threshold
        self.window = timedelta(seconds=window)
        self.duration = timedelta(seconds=duration)
        self.notifier = notifier

    @staticmethod
    def normalize(identity: str) -> str:
        return identity.strip().lower()

    async def _get(self, db: AsyncSession, identity: str) -> LockoutRecord | None:
        result = await db.execute(
            select(LockoutRecord).where(LockoutRecord.identity == identity)
        )
        return result.scalar_one_or_none()

    async def record_failure(
        self,
        db: AsyncSession,
        identity: str,
        user_id: str | None = None,
    ) -> bool:
        """
        Record a failed attempt

        A failure after the window has elapsed restarts the count at 1.

        Args:
            db: Database session
            identity: Login identity (email)
            user_id: Owner of the identity, if known, for the notification

        Returns:
            True if this failure locked the identity
        """
        identity = self.normalize(identity)
        now = utcnow()

        record = await self._get(db, identity)
        if record is None:
            record = LockoutRecord(identity=identity, failed_attempts=0)
            db.add(record)

        window_started_at = ensure_aware(record.window_started_at)
        if window_started_at is None or now - window_started_at > self.window:
            record.failed_attempts = 1
            record.window_started_at = now
        else:
            record.failed_attempts += 1

        locked = False
        if record.failed_attempts >= self.threshold:
            locked_until = ensure_aware(record.locked_until)
            if locked_until is None or locked_until <= now:
                record.locked_until = now + self.duration
                locked = True

        attempts = record.failed_attempts
        try:
            await db.commit()
        except IntegrityError:
            # Concurrent first failure for the same identity created the row
            await db.rollback()
            logger.debug("Concurrent lockout record insert", extra={"identity": identity})
            return False

        logger.warning(
            f"Failed attempt recorded ({attempts}/{self.threshold})",
            extra={"identity": identity, "failed_attempts": attempts},
        )

        if locked:
            logger.warning(
                f"Identity locked for {int(self.duration.total_seconds())}s",
                extra={"identity": identity},
            )
            await safe_notify(
                self.notifier,
                user_id,
                "account_locked",
                "Your account has been temporarily locked after repeated failed sign-in attempts.",
                {"identity": identity, "locked_for": int(self.duration.total_seconds())},
            )

        return locked

    async def record_success(self, db: AsyncSession, identity: str) -> None:
        """Clear the failure counter (on successful login)"""
        identity = self.normalize(identity)
        record = await self._get(db, identity)
        if record is None:
            return

        record.failed_attempts = 0
        record.window_started_at = None
        await db.commit()

    async def is_locked(self, db: AsyncSession, identity: str) -> bool:
        """
        Check if identity is locked out

        Args:
            db: Database session
            identity: Login identity (email)

        Returns:
            True while now < locked_until
        """
        record = await self._get(db, self.normalize(identity))
        if record is None:
            return False

        locked_until = ensure_aware(record.locked_until)
        return locked_until is not None and utcnow() < locked_until

    async def get_failed_attempts_count(self, db: AsyncSession, identity: str) -> int:
        """Number of failures inside the current window"""
        record = await self._get(db, self.normalize(identity))
        if record is None:
            return 0

        window_started_at = ensure_aware(record.window_started_at)
        if window_started_at is None or utcnow() - window_started_at > self.window:
            return 0
        return record.failed_attempts

    async def unlock(self, db: AsyncSession, identity: str) -> None:
        """Clear lock and counter unconditionally"""
        identity = self.normalize(identity)
        await db.execute(delete(LockoutRecord).where(LockoutRecord.identity == identity))
        await db.commit()

        logger.info("Identity unlocked", extra={"identity": identity})
