"""
Lead CRM Web Backend - FastAPI Application.

Entry point for the REST API. Every authenticated request passes the
IP restriction middleware; login applies the same policy after the
password check.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

# Add project root to path for importing shared modules
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from web.backend.core.config import WebSettings, get_web_settings
from web.backend.core.ip_middleware import IPRestrictionMiddleware
from web.backend.core.ip_policy import reset_policy_engine
from web.backend.core.rate_limit import limiter
from web.backend.api.v2 import auth, ip_restrictions


# ── Logging setup (structlog) ────────────────────────────────────

_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
_BACKUP_COUNT = 5

_LOGGER_NAME_MAP = {
    "uvicorn.error": "uvicorn",
    "uvicorn.access": "uvicorn",
    "web.backend.core.ip_gate": "ipgate",
    "web.backend.core.ip_middleware": "ipgate",
    "asyncpg": "db",
    "shared.database": "db",
    "alembic": "migration",
}


def _shorten_logger_name(_logger, _method_name: str, event_dict: dict) -> dict:
    """structlog processor: shortens logger names."""
    name = event_dict.get("logger") or ""
    for prefix, short in _LOGGER_NAME_MAP.items():
        if name == prefix or name.startswith(prefix + "."):
            event_dict["logger"] = short
            return event_dict
    if "." in name:
        event_dict["logger"] = name.rsplit(".", 1)[-1]
    return event_dict


def setup_logging(settings: WebSettings) -> None:
    """Route stdlib logging through structlog formatters (console + optional JSON file)."""
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    console_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _shorten_logger_name,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        foreign_pre_chain=shared_processors,
    ))
    root.addHandler(console)

    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                str(log_dir / "backend.log"),
                maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8",
            )
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(structlog.stdlib.ProcessorFormatter(
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    _shorten_logger_name,
                    structlog.processors.JSONRenderer(),
                ],
                foreign_pre_chain=shared_processors,
            ))
            root.addHandler(file_handler)
        except OSError as exc:
            root.warning("Cannot create log file in %s (%s), logging to console only", log_dir, exc)

    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


logger = logging.getLogger("web")


# ── FastAPI app ───────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_web_settings()
    logger.info("Web API starting on %s:%s", settings.host, settings.port)

    from shared.database import db_service
    if settings.database_url:
        if await db_service.connect(database_url=settings.database_url):
            logger.info("Database connected")
        else:
            # Restriction state is unavailable: every authenticated request is denied
            logger.error("Database connection failed, authenticated requests will be denied")
    else:
        logger.warning("No DATABASE_URL, authenticated requests will be denied")

    yield

    if db_service.is_connected:
        await db_service.disconnect()
    logger.info("Web API stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_web_settings()
    reset_policy_engine()

    app = FastAPI(
        title="Lead CRM Web API",
        description="REST API for the lead CRM backend",
        version="1.0.0",
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    # Rate limiter
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # IP restriction middleware (checked before routing)
    app.add_middleware(IPRestrictionMiddleware)

    # CORS middleware (outermost, so preflight requests never hit the IP check)
    cors_origins = [o for o in settings.cors_origins if o != "*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    # Security headers middleware
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response

    app.include_router(auth.router, prefix="/api/v2/auth", tags=["auth"])
    app.include_router(ip_restrictions.router, prefix="/api/v2/ip-restrictions", tags=["ip-restrictions"])

    @app.get("/api/v2/health", tags=["health"])
    async def health_check():
        """Health check endpoint."""
        from shared.database import db_service
        return {
            "status": "ok",
            "database": db_service.is_connected,
            "service": "lead-crm-web",
        }

    @app.get("/", tags=["health"])
    async def root():
        return {"ok": True}

    return app


setup_logging(get_web_settings())

# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_web_settings()
    uvicorn.run(
        "web.backend.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
