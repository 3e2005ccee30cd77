from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import dispose_db, init_db
from app.core.ratelimit import limiter
from app.features.users.routes import router as user_router
from app.features.teams.routes import router as team_router
from app.features.projects.routes import router as project_router
from app.features.tasks.routes import router as task_router
from app.features.permissions.routes import router as role_router
from app.features.invitations.routes import router as invitation_router
from app.features.dashboard.routes import router as dashboard_router
from app.features.superadmin.routes import router as superadmin_router
from app.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Planora Backend",
    description="Multi-tenant project management API with team-scoped RBAC",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.app.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1] if error["loc"] else "body"
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.exception_handler(OperationalError)
async def storage_unavailable_handler(request: Request, exc: OperationalError):
    log.error("Storage unavailable on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"detail": "Service temporarily unavailable"}, status_code=503)


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    log.error("Storage error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


@app.on_event("startup")
async def startup():
    """Initialize database on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")


@app.on_event("shutdown")
async def shutdown():
    await dispose_db()


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Planora Backend API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require a Bearer token in the Authorization header or the token cookie",
            "protected_endpoints": [
                "/users/me", "/teams/*", "/projects/*", "/tasks/*", "/roles/*",
                "/invitations/*", "/dashboard/*", "/superadmin/*"
            ],
            "public_endpoints": ["/", "/health"]
        },
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(user_router, prefix="/users", tags=["users"])
# Alias for singular form (if frontend uses /user/me)
app.include_router(user_router, prefix="/user", tags=["users"], include_in_schema=False)

app.include_router(team_router, prefix="/teams", tags=["teams"])

app.include_router(project_router, prefix="/projects", tags=["projects"])

app.include_router(task_router, prefix="/tasks", tags=["tasks"])

# Roles and the permission catalog
app.include_router(role_router, prefix="/roles", tags=["roles"])

app.include_router(invitation_router, prefix="/invitations", tags=["invitations"])

app.include_router(dashboard_router, prefix="/dashboard", tags=["dashboard"])

app.include_router(superadmin_router, prefix="/superadmin", tags=["superadmin"])
