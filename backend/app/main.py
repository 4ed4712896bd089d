import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.trustedhost import TrustedHostMiddleware

from app.api.router import router
from app.core.config import settings
from app.core.logging import configure_logging
from app.services.subscriptions import CollaboratorFailure

configure_logging()
logger = logging.getLogger("app")

app = FastAPI(title="Kiraana Backend", version="0.2.0")


def _allowed_hosts() -> list[str]:
    hosts = [h.strip() for h in settings.ALLOWED_HOSTS.split(",") if h.strip()]
    return hosts or ["*"]


app.add_middleware(TrustedHostMiddleware, allowed_hosts=_allowed_hosts())


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response: Response = await call_next(request)
    if not settings.SECURITY_HEADERS_ENABLED:
        return response
    # Entitlement and routing answers must never be served from a cache.
    response.headers["Cache-Control"] = "no-store"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.ENV != "dev":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


@app.exception_handler(CollaboratorFailure)
@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: Exception):
    logger.error("storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Something went wrong, try again"})


app.include_router(router)


@app.get("/health")
def health():
    return {"ok": True, "env": settings.ENV}
