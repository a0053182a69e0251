from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging
import os
import time
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from .database import Base, engine, get_db
from .errors import DomainError, HasDependencies
from .routes import (
    auth,
    users,
    tokens,
    epics,
    user_stories,
    acceptance_criteria,
    requirements,
    config,
    steering_documents,
    navigation,
    search,
    audit,
    comments,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

dsn = os.getenv("SENTRY_DSN")
if dsn:
    sentry_sdk.init(dsn=dsn, integrations=[FastApiIntegration()])

REQUEST_COUNT = Counter("request_count", "Total requests", ["method", "endpoint"])
REQUEST_LATENCY = Histogram(
    "request_latency_seconds", "Request latency", ["endpoint"]
)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="reqhub API")

origins = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

limiter = Limiter(key_func=get_remote_address, default_limits=["120/minute"])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, lambda r, e: Response("Too Many Requests", status_code=429))
if os.getenv("TESTING") != "1":
    app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    body = {"code": exc.code, "message": exc.message}
    if isinstance(exc, HasDependencies) and exc.dependencies:
        body["dependencies"] = [
            dep.model_dump(mode="json") if hasattr(dep, "model_dump") else dep
            for dep in exc.dependencies
        ]
    if exc.status_code >= 500:
        logger.error("request failed", extra={"path": request.url.path, "error_code": exc.code})
    return JSONResponse(status_code=exc.status_code, content={"error": body})


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    endpoint = request.url.path
    REQUEST_COUNT.labels(request.method, endpoint).inc()
    REQUEST_LATENCY.labels(endpoint).observe(time.time() - start)
    return response


@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/api/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("database health check failed", exc_info=True)
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "down"})
    return {"status": "ok", "database": "up"}


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(tokens.router)
app.include_router(epics.router)
app.include_router(user_stories.router)
app.include_router(acceptance_criteria.router)
app.include_router(requirements.router)
app.include_router(config.router)
app.include_router(steering_documents.router)
app.include_router(navigation.router)
app.include_router(search.router)
app.include_router(audit.router)
# entity comment routes use a "/api/{collection}/..." pattern, so they go last
app.include_router(comments.router)
app.include_router(comments.entity_router)


PUBLIC_PATHS = {
    "/api/health",
    "/metrics",
    "/api/auth/login",
    "/api/auth/refresh",
    "/api/auth/logout",
}


def _api_routes(routes, prefix=""):
    from fastapi.routing import APIRoute

    for route in routes:
        if isinstance(route, APIRoute):
            yield prefix + route.path, route
            continue
        # included routers wrap the router they include and its prefix
        included = getattr(route, "original_router", None)
        if included is not None:
            context = getattr(route, "include_context", None)
            yield from _api_routes(included.routes, prefix + (getattr(context, "prefix", "") or ""))
        elif getattr(route, "routes", None):
            yield from _api_routes(route.routes, prefix + (getattr(route, "path", "") or ""))


def audit_routes() -> int:
    """Fail when an ``/api`` route is missing the authentication dependency.

    Returns the number of protected routes checked.
    """
    from .auth import get_current_user

    checked = 0
    for path, route in _api_routes(app.router.routes):
        if not path.startswith("/api") or path in PUBLIC_PATHS:
            continue
        calls = [dep.call for dep in route.dependant.dependencies]
        if get_current_user not in calls:
            raise RuntimeError(f"Route {path} missing authentication")
        checked += 1
    return checked


audit_routes()
