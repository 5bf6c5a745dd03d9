import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finboard.api.api import api_router
from finboard.api.deps import build_dashboard
from finboard.core.config import settings
from finboard.core.errors import (
    FinboardError,
    InvalidInputError,
    ProjectionError,
    CredentialMissingError,
    AnalysisError,
    PersistenceError
)
from finboard.database import engine, init_db
from finboard.services.storage import KeyValueStore

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidInputError: 422,
    ProjectionError: 422,
    CredentialMissingError: 412,
    AnalysisError: 502,
    PersistenceError: 507,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Load and reconcile the persisted collections once per process
    if getattr(app.state, "dashboard", None) is None:
        init_db()
        app.state.dashboard = build_dashboard(KeyValueStore(engine))
        logger.info("Dashboard state loaded")
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors(), "body": exc.body},
    )


@app.exception_handler(FinboardError)
async def finboard_exception_handler(request: Request, exc: FinboardError):
    status_code = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


# Set all CORS enabled origins
if settings.CORS_ORIGIN_URLS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGIN_URLS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/health")
def health_check():
    return {"status": "ok"}

@app.get("/")
def root():
    return {"message": "Welcome to Finance Classroom API (FastAPI)"}


def run():
    import uvicorn

    uvicorn.run("finboard.main:app", host="0.0.0.0", port=settings.PORT)


if __name__ == "__main__":
    run()
