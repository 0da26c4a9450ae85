"""Lockout record model"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from sso_service.models.database import Base


class LockoutRecord(Base):
    """Failed-attempt counter and lock state for one identity"""

    __tablename__ = "lockout_records"

    # Normalized email
    identity: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )

    failed_attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    window_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    locked_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<LockoutRecord(identity={self.identity}, failed_attempts={self.failed_attempts})>"
