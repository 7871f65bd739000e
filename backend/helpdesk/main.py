import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from helpdesk.api.routes.admin import router as admin_router
from helpdesk.api.routes.attachments import router as attachments_router
from helpdesk.api.routes.auth import router as auth_router
from helpdesk.api.routes.conversations import router as conversations_router
from helpdesk.api.routes.directory import router as directory_router
from helpdesk.api.routes.gmeet import router as gmeet_router
from helpdesk.api.routes.meetings import router as meetings_router
from helpdesk.api.routes.metrics import router as metrics_router
from helpdesk.api.routes.stats import router as stats_router
from helpdesk.api.routes.tickets import router as tickets_router
from helpdesk.api.routes.ws import router as ws_router
from helpdesk.core.config import settings
from helpdesk.core.logging import setup_logging
from helpdesk.db import session as session_mod
from helpdesk.metrics.prometheus import api_request_latency_seconds

logger = logging.getLogger("helpdesk")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level, settings.log_json)
    session_mod.create_db_and_tables()
    logger.info("Helpdesk API started", extra={"project": settings.project_name})
    yield


app = FastAPI(
    title="Helpdesk API",
    version="1.0.0",
    description="Enterprise helpdesk: tickets, chat, team messaging and meetings",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Cookie holds only the sid; the session row lives in the database.
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie=settings.session_cookie_name,
    max_age=settings.session_max_age_seconds,
    same_site="lax",
    https_only=settings.session_cookie_secure,
)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    start = time.perf_counter()
    response: Response | None = None
    try:
        response = await call_next(request)
        return response
    finally:
        dt = time.perf_counter() - start
        route = request.url.path
        method = request.method
        status = str(getattr(response, "status_code", 500))
        api_request_latency_seconds.labels(route=route, method=method, status=status).observe(dt)
        if route.startswith("/api"):
            logger.info(
                "request",
                extra={"method": method, "path": route, "status": status, "duration_ms": round(dt * 1000, 1)},
            )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth_router)
app.include_router(directory_router)
app.include_router(tickets_router)
app.include_router(attachments_router)
app.include_router(stats_router)
app.include_router(conversations_router)
app.include_router(meetings_router)
app.include_router(gmeet_router)
app.include_router(admin_router)
app.include_router(metrics_router)
app.include_router(ws_router)
