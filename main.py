from datetime import datetime, timezone
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import logger, missing_required_env  # type: ignore
from routers import card_images, webhook  # type: ignore

app = FastAPI(title="Card Orders API")

# ---- CORS setup ----
_default_origins = ",".join([
    "http://localhost:3000",
    "http://localhost:8080",
    "http://localhost:3001",
    "null",
])
_origins_env = os.getenv("ALLOWED_ORIGINS") or _default_origins
ALLOWED_ORIGINS = [o.strip() for o in _origins_env.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Security headers ---
@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("X-Frame-Options", "DENY")
    return response


@app.exception_handler(RequestValidationError)
async def _invalid_request(request: Request, exc: RequestValidationError):
    logger.warning(f"invalid request to {request.url.path}: {exc.errors()}")
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


@app.exception_handler(Exception)
async def _unhandled_error(request: Request, exc: Exception):
    logger.exception(f"unhandled error on {request.method} {request.url.path}")
    return JSONResponse({"error": "Internal server error", "message": str(exc)}, status_code=500)


app.include_router(webhook.router)
app.include_router(card_images.router)


@app.on_event("startup")
async def _validate_environment():
    missing = missing_required_env()
    if missing:
        logger.warning(f"Missing required environment variables: {', '.join(missing)}; some endpoints will fail")
    else:
        logger.info("Environment variables validated")


@app.on_event("startup")
async def _init_schema():
    try:
        from core.database import init_db
        init_db()
    except Exception as _ex:
        logger.warning(f"init_db failed: {_ex}")


@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
