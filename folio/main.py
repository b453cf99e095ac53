from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from folio.api.routes import jobs, maintenance
from folio.config import get_settings
from folio.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler
from folio.core.lifespan import lifespan
from folio.core.middleware import RequestLoggingMiddleware

settings = get_settings()

app = FastAPI(title="Folio Engine", lifespan=lifespan, docs_url=None if settings.environment == "production" else "/docs", redoc_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "x-owner-id"], expose_headers=["content-length", "x-request-id"])

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
app.include_router(maintenance.router, prefix="/internal", tags=["maintenance"])
