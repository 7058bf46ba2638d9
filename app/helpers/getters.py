from app.core.config import settings


def isDebugMode() -> bool:
    return settings.MODE.lower() in ("debug", "dev", "development")
