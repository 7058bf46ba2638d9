from sqlalchemy import Column, Date, Integer, String, UniqueConstraint
from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class PendingSignup(Base):
    """Customer registration staged until its e-mail OTP is confirmed."""
    __tablename__ = "pending_signups"
    __table_args__ = (
        UniqueConstraint("email", "ip_address", name="uq_pending_signups_email_ip"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(254), nullable=False, index=True)
    ip_address = Column(String(64), nullable=False)
    user_agent = Column(String(512), default="", nullable=False)
    password_hash = Column(String(150), nullable=False)
    full_name = Column(String(50), nullable=False)
    username = Column(String(20), nullable=False)
    birthday = Column(Date, nullable=False)
    gender = Column(String(20), nullable=False)
    employment_status = Column(String(20), nullable=False, default="Prefer not to say")
    created_at = Column(UTCDateTime, default=utcnow, nullable=False, index=True)
