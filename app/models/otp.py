from sqlalchemy import Boolean, Column, Index, Integer, String, text
from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class OTPRecord(Base):
    """
    One-time passcode issued for an (email, purpose) pair.

    A record is live while `is_used` is false and `expires_at` is in the
    future. Once used, or once `attempts` reaches the cap, it is dead for good.
    """
    __tablename__ = "otp_records"
    __table_args__ = (
        Index("ix_otp_records_lookup", "email", "purpose", "is_used"),
        # At most one unused record per (email, purpose)
        Index(
            "uq_otp_records_unused",
            "email",
            "purpose",
            unique=True,
            postgresql_where=text("NOT is_used"),
            sqlite_where=text("NOT is_used"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(254), nullable=False)
    purpose = Column(String(32), nullable=False)  # 'admin_login', 'password_reset', 'email_verification'
    code_hash = Column(String(150), nullable=False)  # bcrypt of the 6-digit code
    expires_at = Column(UTCDateTime, nullable=False, index=True)
    attempts = Column(Integer, default=0, nullable=False)
    is_used = Column(Boolean, default=False, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
