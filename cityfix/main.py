# File: cityfix/main.py
# Project: cityfix

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi import _rate_limit_exceeded_handler

from cityfix.core.config import cors_origins_list, settings
from cityfix.core.errors import IssueNotFound, RemoteStoreError, UploadRejected
from cityfix.core.ratelimit import limiter
from cityfix.db.session import SessionLocal, engine, init_db
from cityfix.routers import auth, reports, reports_stats, realtime
from cityfix.services.issues import SqlIssueBackend
from cityfix.services.realtime import ChangeFeed, ConnectionManager
from cityfix.services.report_store import ReportStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(engine)
    feed = ChangeFeed()
    backend = SqlIssueBackend(SessionLocal, feed)
    store = ReportStore(backend)
    await store.refresh()
    dispose = store.subscribe(lambda items: logger.debug("reports resynced: %d", len(items)))

    manager = ConnectionManager()
    relay = feed.subscribe(lambda event: manager.broadcast(event.as_message()))

    app.state.issue_backend = backend
    app.state.report_store = store
    app.state.ws_manager = manager
    logger.info("report store ready with %d reports", len(store.list_reports()))
    try:
        yield
    finally:
        dispose()
        relay.unsubscribe()
        await feed.drain()


async def _issue_not_found(request: Request, exc: IssueNotFound):
    return JSONResponse(status_code=404, content={"detail": exc.message})

async def _remote_store_error(request: Request, exc: RemoteStoreError):
    logger.error("remote store error on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=502, content={"detail": exc.message})

async def _upload_rejected(request: Request, exc: UploadRejected):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def create_app() -> FastAPI:
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="CityFix API", lifespan=lifespan)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(IssueNotFound, _issue_not_found)
    app.add_exception_handler(RemoteStoreError, _remote_store_error)
    app.add_exception_handler(UploadRejected, _upload_rejected)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins_list(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"ok": True}

    app.include_router(auth.router)
    app.include_router(reports_stats.router)
    app.include_router(reports.router)
    app.include_router(realtime.router)
    return app


app = create_app()
