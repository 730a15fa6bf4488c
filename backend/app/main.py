# backend/app/main.py
import logging
import os

import uvicorn
from fastapi import FastAPI

from . import schemas
from .api import get_settings, router as api_router

# Set up logger
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize FastAPI application
app = FastAPI(
    title="Meeting Summarizer API",
    description=(
        "Summarizes uploaded meeting transcripts (text or PDF) with an LLM "
        "and emails the result on request."
    ),
    version="1.0.0",
)


@app.on_event("startup")
async def startup_event():
    """
    Resolves configuration once at startup.

    Logs which integrations are available so misconfiguration shows up in
    the logs before the first request arrives.
    """
    logger.info("Application startup: Resolving configuration...")
    settings = get_settings()
    provider = settings.provider
    if provider.enabled:
        logger.info(
            f"AI provider enabled (key via {provider.api_key_source}), "
            f"candidate models: {', '.join(provider.candidate_models)}"
        )
    logger.info(
        f"Email sharing {'enabled' if settings.mail.is_configured else 'disabled'} "
        f"(port {settings.mail.port}, secure={settings.mail.secure})."
    )


app.include_router(api_router, tags=["API Endpoints"])


@app.get("/", tags=["Root"])
async def read_root():
    """Provides a welcome message and basic API information."""
    return {
        "message": "Welcome to the Meeting Summarizer API.",
        "docs_url": "/docs",
        "redoc_url": "/redoc",
        "api_version": app.version,
    }

@app.get("/healthz", response_model=schemas.HealthResponse, tags=["Health Check"])
async def health_check():
    """Simple liveness check endpoint."""
    return {"status": "ok"}


def run():
    """Starts the server on PORT (default 3000)."""
    port = get_settings().port
    logger.info(f"Server is running on http://localhost:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()
