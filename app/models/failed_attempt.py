from sqlalchemy import Boolean, Column, Integer, String, UniqueConstraint
from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class FailedAttempt(Base):
    """
    Failed-guess counter keyed by contact info, not by principal.

    One row per (email, ip_address, attempt_type). Rows expire 24 hours after
    `created_at` whatever their lock state.
    """
    __tablename__ = "failed_attempts"
    __table_args__ = (
        UniqueConstraint("email", "ip_address", "attempt_type", name="uq_failed_attempts_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(254), nullable=False, index=True)
    ip_address = Column(String(64), nullable=False)
    user_agent = Column(String(512), default="", nullable=False)
    attempt_type = Column(String(16), nullable=False, default="login")  # 'login', 'signup', 'otp'
    attempt_count = Column(Integer, default=1, nullable=False)
    last_attempt_at = Column(UTCDateTime, default=utcnow, nullable=False)
    is_locked = Column(Boolean, default=False, nullable=False)
    locked_until = Column(UTCDateTime, nullable=True, index=True)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False, index=True)
