from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import init_db
from app.core.handlers import register_exception_handlers
from app.core.rate_limit import limiter
from app.features.permissions.policy import build_default_policy
from app.features.users.routes import router as user_router
from app.features.permissions.routes import router as permission_router
from app.utils import get_logger


log = get_logger(__name__)
log.info("Starting clinic access control")
app = FastAPI(
    title="Clinic Access Control",
    description="Position-based permissions, grants and permission requests for clinic staff",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter
# Built at import so a broken policy table stops the process before it serves
app.state.policy = build_default_policy()
register_exception_handlers(app)


class LogTimings(TimingClient):
    """Route timings go to the debug log."""

    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("clinic.app.features."), seconds=round(timing, 4), tags=tags))


app.add_middleware(TimingMiddleware, client=LogTimings(), metric_namer=StarletteScopeToName("clinic", app))

if config.ENABLE_DOCS:
    log.warning("API docs are enabled")
if config.ALLOW_ORIGIN:
    log.warning("CORS allowed for %s", config.ALLOW_ORIGIN)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.ALLOW_ORIGIN],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )


@app.on_event("startup")
async def startup():
    """Create tables if they are missing."""
    await init_db()
    log.info("Database ready at %s", config.SQLALCHEMY_DATABASE_URL)


@app.get("/")
async def root():
    return {
        "service": "clinic-access-control",
        "version": app.version,
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "public_endpoints": ["/health", "/permissions/definitions"],
        "positions": len(app.state.policy.as_dict()),
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}


app.include_router(user_router, prefix="/users", tags=["users"])
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
