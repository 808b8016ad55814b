from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from textbook_engine.ai.errors import ModelCallError, OutlineValidationError
from textbook_engine.api.routes import textbooks
from textbook_engine.config import get_settings
from textbook_engine.core.exceptions import global_exception_handler, http_exception_handler, outline_failure_exception_handler, request_validation_exception_handler
from textbook_engine.core.lifespan import lifespan
from textbook_engine.core.middleware import RequestLoggingMiddleware

settings = get_settings()

app = FastAPI(title="textbook-engine", lifespan=lifespan)

app.add_middleware(CORSMiddleware, allow_origins=list(settings.allowed_origins), allow_credentials=True, allow_methods=["GET", "POST", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "x-request-id"])

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
# Only the submission path lets these escape; the runner absorbs its own model errors.
app.add_exception_handler(OutlineValidationError, outline_failure_exception_handler)
app.add_exception_handler(ModelCallError, outline_failure_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(textbooks.router, prefix="/v1/textbooks", tags=["textbooks"])


if __name__ == "__main__":
  import uvicorn

  uvicorn.run("textbook_engine.main:app", host="0.0.0.0", port=8080, reload=settings.debug)
