"""Audit Log model"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sso_service.models.database import Base


class AuditLog(Base):
    """Append-only record of a security-relevant event"""

    __tablename__ = "audit_logs"

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Actor (nullable for failed login attempts)
    user_id: Mapped[str | None] = mapped_column(
        String(36),
        nullable=True,
        index=True,
    )
    client_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Event information
    action: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="login_success, login_failed, token_refresh, ...",
    )
    resource: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="auth, token, oauth2_client, two_factor, ...",
    )
    details: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    # Request information
    ip_address: Mapped[str | None] = mapped_column(
        String(45),  # IPv6 max length
        nullable=True,
    )
    user_agent: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Result
    success: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action}, success={self.success})>"
