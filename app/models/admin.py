from sqlalchemy import Boolean, Column, Integer, String
from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class Admin(Base):
    """
    Back-office principal (superadmin, manager or staff).

    `remembered_until` is the trusted-device expiry: while it lies in the
    future, password login skips the e-mailed second factor.
    """
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(100), nullable=False)
    email = Column(String(254), unique=True, index=True, nullable=False)  # stored lowercase
    password_hash = Column(String(150), nullable=False)
    role = Column(String(20), nullable=False, default="staff")  # 'superadmin', 'manager', 'staff'
    status = Column(String(20), nullable=False, default="inactive")  # 'active' while logged in
    last_login_at = Column(UTCDateTime, nullable=True)
    first_login_completed = Column(Boolean, default=False, nullable=False)
    remembered_until = Column(UTCDateTime, nullable=True)
    token_version = Column(Integer, default=1, nullable=False)  # invalidate old JWTs
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    principal_type = "admin"
