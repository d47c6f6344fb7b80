import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketplace.config import settings
from marketplace.database import Base, engine
from marketplace.models import (  # noqa: F401  (register every table with the metadata)
    admin,
    catalog,
    gallery,
    otp_verification,
    service_list,
    service_provider,
    token,
    user,
)
from marketplace.routers import admin as admin_router
from marketplace.routers import auth, catalog as catalog_router, gallery as gallery_router, provider, users
from marketplace.services.cleanup_service import record_sweeper
from marketplace.services.rate_limit import limiter, rate_limit_exceeded_handler
from marketplace.utils.db_migrations import run_migrations
from marketplace.utils.errors import describe_validation_errors
from marketplace.utils.response import create_response, error_response, handle_exception
from seed import run_seed

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title=settings.PROJECT_NAME, version=settings.API_VER)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Auto create tables
Base.metadata.create_all(bind=engine)
run_migrations(engine)

# CORS for SPA / API access
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return handle_exception(exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = describe_validation_errors(exc.errors())
    return error_response(
        ", ".join(messages) or "Invalid request",
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        errors=messages,
    )


@app.on_event("startup")
async def startup_event():
    if settings.SEED_ON_STARTUP:
        run_seed()
    await record_sweeper.start()


@app.on_event("shutdown")
async def shutdown_event():
    await record_sweeper.stop()


# Add routes
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(provider.router)
app.include_router(gallery_router.router)
app.include_router(admin_router.router)
app.include_router(catalog_router.router)


@app.get("/")
def home():
    try:
        return create_response(
            message="Marketplace API running",
            data={"service": "marketplace-backend", "api_ver": settings.API_VER},
            status_code=status.HTTP_200_OK,
        )
    except Exception as exc:
        return handle_exception(exc)
