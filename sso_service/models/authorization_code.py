"""Authorization Code model"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sso_service.models.database import Base
from sso_service.utils.timeutils import ensure_aware


class AuthorizationCode(Base):
    """Single-use voucher created by authorize and consumed by exchange"""

    __tablename__ = "authorization_codes"

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Code identification (SHA-256 of the opaque value)
    code_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )

    # Binding
    client_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    redirect_uri: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    scope: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
    )

    # Lifecycle
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Set exactly once when the code is exchanged",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AuthorizationCode(id={self.id}, client_id={self.client_id}, used={self.used_at is not None})>"

    @property
    def scopes(self) -> list[str]:
        return self.scope.split() if self.scope else []

    @property
    def is_expired(self) -> bool:
        return datetime.now(timezone.utc) >= ensure_aware(self.expires_at)
