from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from homeledger.api.routes import router as api_router
from homeledger.core.config import AppConfig, get_settings
from homeledger.core.errors import LedgerError, RateLimitExceededError
from homeledger.core.rate_limit import FixedWindowRateLimiter
from homeledger.db.session import init_db

app_config = AppConfig()
settings = get_settings()
app = FastAPI(title=app_config.description, version=app_config.version)

app.state.auth_rate_limiter = FixedWindowRateLimiter(
    max_attempts=settings.auth_rate_limit_attempts,
    window_seconds=settings.auth_rate_limit_window_seconds,
)

app.add_middleware(GZipMiddleware, minimum_size=1024)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitExceededError) and exc.retry_after is not None:
        headers = {"Retry-After": str(max(1, round(exc.retry_after)))}
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse(status_code=404, content={"error": "API endpoint not found"})
    return JSONResponse(
        status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_errors(exc)},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", path=request.url.path)
    return JSONResponse(status_code=500, content={"error": "An unexpected error occurred"})


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]


@app.on_event("startup")
async def on_startup() -> None:
    await init_db()
    logger.info("homeledger started", version=app_config.version, database=settings.database_url)


@app.get("/")
async def root():
    return {"message": "homeledger up", "version": app_config.version}
