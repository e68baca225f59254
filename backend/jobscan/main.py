"""FastAPI application entrypoint."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import init_db
from .errors import (
    NoCredentialError,
    PersistenceError,
    ScanCancelledError,
    ScanError,
    ScanInProgressError,
    TokenRefreshError,
    TransportError,
)
from .routers import scan

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

ERROR_STATUS = {
    NoCredentialError: 409,
    TokenRefreshError: 401,
    ScanInProgressError: 409,
    ScanCancelledError: 409,
    TransportError: 502,
    PersistenceError: 500,
}


def status_for(exc: ScanError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Job Mail Scanner API",
    description="Scan Gmail for job-application mail and track applications with OpenAI classification",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ScanError)
async def scan_error_handler(request: Request, exc: ScanError):
    return JSONResponse(status_code=status_for(exc), content=exc.to_dict())


app.include_router(scan.router)


@app.get("/api/health")
def health():
    return {"status": "ok"}
