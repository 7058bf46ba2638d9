from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.endpoints import auth
from app.core.config import settings
from app.core.exceptions import AuthFlowError, LockedError, RateLimitedError
from app.core.logging import capture_error, init_sentry, setup_logging
from app.db.base import Base
from app.db.session import engine
from app.helpers.getters import isDebugMode
from app.middleware.logging import AccessLoggingMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


app = FastAPI(
    title=f"{settings.APP_NAME} - Identity API",
    description="""
## Authentication

### Customers
1. `POST /api/auth/signup` with the profile; a 6-digit code is e-mailed
2. `POST /api/auth/signup/verify-otp` with the code creates the account
3. `POST /api/auth/login` returns a bearer token valid for one day

### Admins
1. `POST /api/auth/admin/request-otp` (or `/login`) with e-mail and password; a code is e-mailed
2. `POST /api/auth/admin/verify-otp` with the code returns a bearer token
   - `remember: true` trusts the device for 30 days; later logins skip the code

### Password reset
`POST /api/auth/forgot-password`, then `POST /api/auth/reset-password` with the code.

Codes expire after 10 minutes and allow 3 wrong guesses. Five failed attempts
from the same e-mail and IP lock them out for 15 minutes.
    """,
    version="1.0.0",
    lifespan=lifespan,
)

# Initialize logging and error tracking
setup_logging()
init_sentry()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Access lines are noisy in debug mode; the request id is still assigned
app.add_middleware(AccessLoggingMiddleware, enabled=not isDebugMode())


@app.exception_handler(AuthFlowError)
async def auth_flow_error_handler(request: Request, exc: AuthFlowError):
    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)
    elif isinstance(exc, LockedError):
        headers["Retry-After"] = str(exc.remaining_minutes * 60)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    capture_error(
        exc,
        context={"request": {"method": request.method, "path": request.url.path}},
        tags={"request_id": getattr(request.state, "request_id", "unknown")},
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(auth.router, prefix="/api/auth", tags=["auth"])


@app.get("/health")
def health():
    return {"status": "ok", "service": settings.APP_NAME}


@app.get("/")
def root():
    return {"message": f"Welcome to the {settings.APP_NAME} identity API. See /docs for the OpenAPI schema."}
