"""DonateHub - FastAPI main application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from donatehub.api.v1.router import router as v1_router
from donatehub.config import get_settings
from donatehub.database import Base, engine
from donatehub.errors import DonationError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: create tables on startup."""
    logger.info("Starting %s API", settings.APP_NAME)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()
    logger.info("%s API shutdown complete", settings.APP_NAME)


app = FastAPI(
    title=settings.APP_NAME,
    description="Donation platform API: causes, gateway payments, receipts",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions and return stable 500 response."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "error": "internal_error"},
    )


@app.exception_handler(DonationError)
async def donation_error_handler(_: Request, exc: DonationError):
    if exc.status_code >= 500:
        logger.error("%s: %s", exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "error": exc.code})


@app.exception_handler(HTTPException)
async def http_exception_handler(_: Request, exc: HTTPException):
    """Preserve explicit HTTP exceptions with their original status/detail."""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_: Request, exc: RequestValidationError):
    """Return consistent 422 payload with a flattened first-error message."""
    errors = exc.errors()
    first_error = errors[0] if errors else {}
    loc = first_error.get("loc", [])
    loc_path = ".".join(str(p) for p in loc if p not in {"body", "query", "path"})
    msg = first_error.get("msg", "Validation failed")
    detail = f"{loc_path}: {msg}" if loc_path else msg
    return JSONResponse(
        status_code=422,
        content={"detail": detail, "errors": jsonable_errors(errors)},
    )


def jsonable_errors(errors):
    # ctx may hold exception instances (e.g. ValueError from field validators)
    return jsonable_encoder([{k: v for k, v in e.items() if k != "ctx"} for e in errors])


app.include_router(v1_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"message": f"{settings.APP_NAME} API", "status": "ok"}
