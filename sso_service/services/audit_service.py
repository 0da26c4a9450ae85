"""Audit service for security events logging"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sso_service.core.config import logger
from sso_service.models.audit_log import AuditLog


class AuditService:
    """
    Audit sink writing to the ``audit_logs`` table

    Records are written in a session of their own, after the caller's unit
    of work has committed, so an audit failure never rolls back or fails
    the operation being audited.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def record(
        self,
        action: str,
        resource: str,
        user_id: str | None = None,
        details: dict | None = None,
        ip_address: str | None = None,
        client_id: str | None = None,
        user_agent: str | None = None,
        success: bool = True,
        error_message: str | None = None,
    ) -> None:
        """
        Record an audit event

        Args:
            action: What happened (login_success, login_failed, etc.)
            resource: What it happened to (auth, token, oauth2_client, ...)
            user_id: User ID (if applicable)
            details: Additional event data; must not contain secrets
            ip_address: Client IP address
            client_id: OAuth client ID (if applicable)
            user_agent: Client user agent
            success: Whether the event was successful
            error_message: Error message (if failed)
        """
        log_level = logger.info if success else logger.warning
        log_level(
            f"Audit: {action} - {'SUCCESS' if success else 'FAILED'}",
            extra={
                "action": action,
                "resource": resource,
                "success": success,
                "user_id": user_id,
                "client_id": client_id,
                "ip_address": ip_address,
            },
        )

        try:
            async with self._session_maker() as session:
                session.add(
                    AuditLog(
                        user_id=user_id,
                        client_id=client_id,
                        action=action,
                        resource=resource,
                        details=details,
                        ip_address=ip_address,
                        user_agent=user_agent,
                        success=success,
                        error_message=error_message,
                    )
                )
                await session.commit()
        except Exception as e:
            # Runs after the audited commit; never fail the caller
            logger.error(f"Failed to write audit log for {action}: {type(e).__name__}: {e}")

    async def log_login_success(
        self,
        user_id: str,
        client_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Log successful login"""
        await self.record(
            action="login_success",
            resource="auth",
            user_id=user_id,
            client_id=client_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    async def log_login_failed(
        self,
        email: str,
        reason: str,
        user_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Log failed login attempt"""
        await self.record(
            action="login_failed",
            resource="auth",
            user_id=user_id,
            details={"email": email},
            ip_address=ip_address,
            user_agent=user_agent,
            success=False,
            error_message=reason,
        )

    async def log_security_incident(
        self,
        incident_type: str,
        user_id: str | None = None,
        client_id: str | None = None,
        details: dict | None = None,
    ) -> None:
        """Log security incident (e.g., refresh token reuse)"""
        await self.record(
            action=f"security_incident_{incident_type}",
            resource="token",
            user_id=user_id,
            client_id=client_id,
            details=details,
            success=False,
            error_message=f"Security incident: {incident_type}",
        )
