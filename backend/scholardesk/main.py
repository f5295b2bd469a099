import logging

from fastapi import Depends, FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from scholardesk import models  # noqa: F401  registers tables on Base.metadata
from scholardesk.auth import get_password_hash
from scholardesk.config import settings
from scholardesk.db import Base, SessionLocal, engine, get_db
from scholardesk.exceptions import (
    AppException,
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from scholardesk.middleware.request_id import RequestIDMiddleware
from scholardesk.models import User, UserRole
from scholardesk.rate_limit import limiter, rate_limit_exceeded_handler
from scholardesk.routers import assignments, auth, notifications, team, websocket, worker, workspaces
from scholardesk.utils.logging import configure_logging

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Sentry integration (optional)
if settings.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[FastApiIntegration(), SqlalchemyIntegration()],
        traces_sample_rate=0.1,
        environment=settings.ENVIRONMENT,
    )
    logger.info("Sentry error tracking initialized")


def seed_admin_user(db: Session) -> None:
    """Create the configured admin account if it does not exist yet."""
    email = settings.SEED_ADMIN_EMAIL
    if not email or not settings.SEED_ADMIN_PASSWORD:
        return
    if db.query(User).filter(User.email == email).first():
        return
    db.add(User(
        name="Admin",
        email=email,
        password_hash=get_password_hash(settings.SEED_ADMIN_PASSWORD),
        role=UserRole.ADMIN,
        is_active=True,
    ))
    db.commit()
    logger.info(f"Admin user created: {email}")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Assignment lifecycle: quoting, team assignment, release barrier and progress tracking",
    version="0.1.0",
)

# Add rate limiting state
app.state.limiter = limiter

# Register exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(Exception, general_exception_handler)

allowed_origins = settings.cors_origins_list
if settings.FRONTEND_URL and settings.FRONTEND_URL not in allowed_origins:
    allowed_origins.append(settings.FRONTEND_URL)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)
app.add_middleware(RequestIDMiddleware)


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.APP_NAME}...")
    if not settings.DB_BOOTSTRAP:
        return
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_admin_user(db)
    finally:
        db.close()


# Register routers
app.include_router(auth.router)
app.include_router(assignments.router)
app.include_router(team.router)
app.include_router(worker.router)
app.include_router(workspaces.router)
app.include_router(notifications.router)
app.include_router(websocket.router)


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/readyz")
def readyz(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Readiness check failed")
        raise HTTPException(status_code=503, detail="Database unavailable")
    return {"status": "ok", "checks": {"database": True}}
