"""Refresh Token model"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sso_service.models.database import Base
from sso_service.utils.timeutils import ensure_aware


class RefreshToken(Base):
    """Opaque refresh token, stored by digest, linked into a rotation chain"""

    __tablename__ = "refresh_tokens"

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Token identification (SHA-256 of the opaque value)
    token_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
        comment="SHA-256 hash of the opaque refresh token",
    )

    # Relationships
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        comment="NULL for first-party logins",
    )

    # Token data
    scope: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
        comment="Space-separated list of scopes",
    )

    # Expiration
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    # Revocation
    revoked: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        index=True,
    )
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Token rotation chain
    parent_id: Mapped[str | None] = mapped_column(
        String(36),
        nullable=True,
        comment="Refresh token this one was rotated from",
    )
    replaced_by_id: Mapped[str | None] = mapped_column(
        String(36),
        nullable=True,
        comment="Refresh token issued when this one was rotated",
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<RefreshToken(id={self.id}, user_id={self.user_id}, revoked={self.revoked})>"

    @property
    def scopes(self) -> list[str]:
        return self.scope.split() if self.scope else []

    @property
    def is_expired(self) -> bool:
        """Check if token is expired"""
        return datetime.now(timezone.utc) >= ensure_aware(self.expires_at)
