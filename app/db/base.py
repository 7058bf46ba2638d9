from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Importa os modelos para que sejam registrados com a Base
from app.models import admin, user, otp, failed_attempt, pending_signup  # noqa: E402,F401
