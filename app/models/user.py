from sqlalchemy import Column, Date, Integer, String
from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class User(Base):
    """Customer account, created only by promoting a verified signup."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(50), nullable=False)
    username = Column(String(20), unique=True, index=True, nullable=False)
    email = Column(String(254), unique=True, index=True, nullable=False)  # stored lowercase
    password_hash = Column(String(150), nullable=False)
    role = Column(String(20), nullable=False, default="customer")
    status = Column(String(20), nullable=False, default="active")
    birthday = Column(Date, nullable=False)
    gender = Column(String(20), nullable=False)
    employment_status = Column(String(20), nullable=False, default="Prefer not to say")
    last_login_at = Column(UTCDateTime, nullable=True)
    token_version = Column(Integer, default=1, nullable=False)  # invalidate old JWTs
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    principal_type = "customer"
    # Customers have no trusted-device bypass
    remembered_until = None
