"""Two-factor authentication service (TOTP and backup codes)"""

from io import BytesIO

import qrcode
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sso_service.core.config import logger
from sso_service.core.errors import AuthError, ErrorKind
from sso_service.models.two_factor import BackupCode, TwoFactorSecret, TwoFactorStatus
from sso_service.models.user import User
from sso_service.schemas.two_factor import TwoFactorSetupResponse, TwoFactorStatusResponse
from sso_service.services.audit_service import AuditService
from sso_service.services.notification_service import NotificationSink, safe_notify
from sso_service.utils.crypto import SecretCodec
from sso_service.utils.timeutils import utcnow


class TwoFactorService:
    """
    Second factor gate

    A secret goes ``pending`` at setup and only becomes ``enabled`` once a
    code generated from it has been verified. Backup codes are stored as
    bcrypt hashes and consumed with a conditional update so each works once.
    """

    def __init__(
        self,
        codec: SecretCodec,
        issuer: str = "SSO Service",
        valid_window: int = 1,
        backup_code_count: int = 8,
        backup_code_length: int = 8,
        audit: AuditService | None = None,
        notifier: NotificationSink | None = None,
    ):
        self.codec = codec
        self.issuer = issuer
        self.valid_window = valid_window
        self.backup_code_count = backup_code_count
        self.backup_code_length = backup_code_length
        self.audit = audit
        self.notifier = notifier

    async def _get_secret(self, db: AsyncSession, user_id: str) -> TwoFactorSecret | None:
        result = await db.execute(
            select(TwoFactorSecret)
            .where(TwoFactorSecret.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _count_unused_codes(self, db: AsyncSession, user_id: str) -> int:
        result = await db.execute(
            select(func.count(BackupCode.id)).where(
                BackupCode.user_id == user_id,
                BackupCode.used_at.is_(None),
            )
        )
        return result.scalar_one()

    async def _replace_backup_codes(self, db: AsyncSession, user_id: str) -> list[str]:
        """Delete previous codes and stage a fresh batch (caller commits)"""
        await db.execute(delete(BackupCode).where(BackupCode.user_id == user_id))

        codes = [self.codec.generate_backup_code(self.backup_code_length) for _ in range(self.backup_code_count)]
        for code in codes:
            db.add(BackupCode(user_id=user_id, code_hash=self.codec.hash_secret(code)))
        return codes

    async def is_enabled(self, db: AsyncSession, user_id: str) -> bool:
        secret = await self._get_secret(db, user_id)
        return secret is not None and secret.is_enabled

    async def begin_setup(self, db: AsyncSession, user_id: str) -> TwoFactorSetupResponse:
        """
        Start (or restart) TOTP enrollment

        Args:
            db: Database session
            user_id: User enrolling

        Returns:
            Secret, provisioning URI and plaintext backup codes (shown once)

        Raises:
            AuthError: NOT_FOUND for an unknown user, ALREADY_EXISTS if 2FA is enabled
        """
        user = await db.get(User, user_id)
        if user is None:
            raise AuthError(ErrorKind.NOT_FOUND, "User not found")

        record = await self._get_secret(db, user_id)
        if record is not None and record.is_enabled:
            raise AuthError(ErrorKind.ALREADY_EXISTS, "Two-factor authentication is already enabled")

        secret = self.codec.generate_totp_secret()
        if record is None:
            record = TwoFactorSecret(user_id=user_id, method="totp")
            db.add(record)
        record.secret = secret
        record.status = TwoFactorStatus.PENDING.value
        record.verified_at = None

        codes = await self._replace_backup_codes(db, user_id)
        record.backup_codes_count = len(codes)
        await db.commit()

        logger.info("Two-factor setup started", extra={"user_id": user_id})

        return TwoFactorSetupResponse(
            secret=secret,
            provisioning_uri=self.codec.provisioning_uri(secret, user.email, self.issuer),
            backup_codes=codes,
        )

    async def provisioning_uri(self, db: AsyncSession, user_id: str) -> str:
        """
        otpauth:// URI for the stored secret, pending or enabled

        Raises:
            AuthError: NOT_FOUND if 2FA was never set up
        """
        record = await self._get_secret(db, user_id)
        user = await db.get(User, user_id)
        if record is None or user is None:
            raise AuthError(ErrorKind.NOT_FOUND, "Two-factor authentication is not configured")
        return self.codec.provisioning_uri(record.secret, user.email, self.issuer)

    async def qr_code_png(self, db: AsyncSession, user_id: str) -> bytes:
        """Render the provisioning URI as a PNG for authenticator apps"""
        uri = await self.provisioning_uri(db, user_id)

        buf = BytesIO()
        qrcode.make(uri).save(buf, format="PNG")
        return buf.getvalue()

    async def confirm_setup(self, db: AsyncSession, user_id: str, code: str) -> None:
        """
        Enable 2FA once a code from the pending secret verifies

        Raises:
            AuthError: NOT_FOUND without a pending setup, INVALID_CODE on mismatch
        """
        record = await self._get_secret(db, user_id)
        if record is None or record.status != TwoFactorStatus.PENDING.value:
            raise AuthError(ErrorKind.NOT_FOUND, "No pending two-factor setup")

        if not self.codec.verify_totp(record.secret, code, self.valid_window):
            raise AuthError(ErrorKind.INVALID_CODE, "Invalid verification code")

        record.status = TwoFactorStatus.ENABLED.value
        record.verified_at = utcnow()
        await db.commit()

        logger.info("Two-factor authentication enabled", extra={"user_id": user_id})
        if self.audit is not None:
            await self.audit.record("2fa_enabled", "two_factor", user_id=user_id)
        await safe_notify(
            self.notifier,
            user_id,
            "2fa_enabled",
            "Two-factor authentication was enabled on your account.",
        )

    async def verify(self, db: AsyncSession, user_id: str, code: str) -> bool:
        """Check a TOTP code against the enabled secret (no mutation)"""
        record = await self._get_secret(db, user_id)
        if record is None or not record.is_enabled:
            return False
        return self.codec.verify_totp(record.secret, code, self.valid_window)

    async def verify_backup_code(self, db: AsyncSession, user_id: str, code: str) -> bool:
        """
        Consume an unused backup code

        Returns:
            True if the code matched an unused one and this call consumed it
        """
        normalized = self.codec.normalize_code(code)
        if not normalized:
            return False

        result = await db.execute(
            select(BackupCode).where(
                BackupCode.user_id == user_id,
                BackupCode.used_at.is_(None),
            )
        )
        for backup_code in result.scalars().all():
            if not self.codec.verify_secret(normalized, backup_code.code_hash):
                continue

            consumed = await db.execute(
                update(BackupCode)
                .where(BackupCode.id == backup_code.id, BackupCode.used_at.is_(None))
                .values(used_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if consumed.rowcount != 1:
                await db.rollback()
                return False

            await db.execute(
                update(TwoFactorSecret)
                .where(TwoFactorSecret.user_id == user_id)
                .values(backup_codes_count=TwoFactorSecret.backup_codes_count - 1)
                .execution_options(synchronize_session=False)
            )
            await db.commit()

            logger.info("Backup code used", extra={"user_id": user_id})
            return True

        return False

    async def verify_second_factor(self, db: AsyncSession, user_id: str, code: str) -> bool:
        """TOTP first, then backup code"""
        if await self.verify(db, user_id, code):
            return True
        return await self.verify_backup_code(db, user_id, code)

    async def disable(self, db: AsyncSession, user_id: str, code: str) -> None:
        """
        Turn 2FA off; requires a current TOTP code

        Raises:
            AuthError: INVALID_SECOND_FACTOR
        """
        if not await self.verify(db, user_id, code):
            raise AuthError(ErrorKind.INVALID_SECOND_FACTOR, "Invalid verification code")

        await db.execute(delete(BackupCode).where(BackupCode.user_id == user_id))
        await db.execute(delete(TwoFactorSecret).where(TwoFactorSecret.user_id == user_id))
        await db.commit()

        logger.info("Two-factor authentication disabled", extra={"user_id": user_id})
        if self.audit is not None:
            await self.audit.record("2fa_disabled", "two_factor", user_id=user_id)
        await safe_notify(
            self.notifier,
            user_id,
            "2fa_disabled",
            "Two-factor authentication was disabled on your account.",
        )

    async def regenerate_backup_codes(self, db: AsyncSession, user_id: str, code: str) -> list[str]:
        """
        Replace all backup codes; requires enabled 2FA and a current TOTP code

        Raises:
            AuthError: INVALID_SECOND_FACTOR
        """
        if not await self.verify(db, user_id, code):
            raise AuthError(ErrorKind.INVALID_SECOND_FACTOR, "Invalid verification code")

        codes = await self._replace_backup_codes(db, user_id)
        await db.execute(
            update(TwoFactorSecret)
            .where(TwoFactorSecret.user_id == user_id)
            .values(backup_codes_count=len(codes))
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        logger.info("Backup codes regenerated", extra={"user_id": user_id})
        if self.audit is not None:
            await self.audit.record("2fa_backup_codes_regenerated", "two_factor", user_id=user_id)
        await safe_notify(
            self.notifier,
            user_id,
            "2fa_backup_codes_regenerated",
            "New backup codes were generated; the previous ones no longer work.",
            {"count": len(codes)},
        )
        return codes

    async def get_status(self, db: AsyncSession, user_id: str) -> TwoFactorStatusResponse:
        record = await self._get_secret(db, user_id)
        if record is None:
            return TwoFactorStatusResponse(enabled=False)

        return TwoFactorStatusResponse(
            enabled=record.is_enabled,
            method=record.method,
            status=record.status,
            backup_codes_remaining=await self._count_unused_codes(db, user_id),
            verified_at=record.verified_at,
        )
