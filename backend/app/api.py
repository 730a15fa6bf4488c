# backend/app/api.py
import logging
import time
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

# Local application imports
from . import config, mailer, schemas, services

logger = logging.getLogger(__name__)

router = APIRouter()


@lru_cache(maxsize=1)
def get_settings() -> config.Settings:
    """Resolves configuration from the environment once per process."""
    return config.load_settings()


# ============================
# Summary Endpoint
# ============================

@router.post(
    "/generate-summary",
    response_model=schemas.SummaryResponse,
    responses={400: {"model": schemas.ErrorResponse}, 500: {"model": schemas.ErrorResponse}},
)
async def generate_summary_endpoint(
    transcript: Optional[UploadFile] = File(None),
    prompt: Optional[str] = Form(None),
    settings: config.Settings = Depends(get_settings),
):
    """Summarizes an uploaded transcript (plain text or PDF) following an optional prompt."""
    start_time = time.time()
    upload = None
    try:
        if transcript is not None:
            logger.info(
                f"Received transcript: {transcript.filename}, "
                f"type: {transcript.content_type}"
            )
            try:
                content = await transcript.read()
            finally:
                await transcript.close()
            upload = services.stage_upload(
                content, transcript.filename, transcript.content_type, settings.upload_dir
            )

        summary = await services.generate_summary(upload, prompt, settings)
    except services.SummaryError as e:
        logger.warning(f"Summary request failed ({e.status_code}): {e}")
        return JSONResponse(status_code=e.status_code, content={"error": e.message})
    except Exception as e:
        logger.error(f"Summary endpoint error: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": services.TranscriptProcessingError.message},
        )

    logger.info(f"Summary generated ({time.time() - start_time:.2f}s, {len(summary)} chars).")
    return schemas.SummaryResponse(summary=summary)


# ============================
# Sharing Endpoint
# ============================

@router.post(
    "/share-summary",
    response_model=schemas.MessageResponse,
    responses={400: {"model": schemas.MessageResponse}, 500: {"model": schemas.MessageResponse}},
)
async def share_summary_endpoint(
    request: schemas.ShareSummaryRequest,
    settings: config.Settings = Depends(get_settings),
):
    """Emails a previously generated summary to a recipient."""
    try:
        message = await mailer.share_summary(request.summary, request.recipient, settings.mail)
    except mailer.MailError as e:
        return JSONResponse(status_code=e.status_code, content={"message": e.message})
    return schemas.MessageResponse(message=message)


# ============================
# Diagnostics Endpoint
# ============================

@router.get("/diag", response_model=schemas.DiagnosticsResponse)
async def diagnostics_endpoint(settings: config.Settings = Depends(get_settings)):
    """Reports which integrations are configured without revealing secret values."""
    provider = settings.provider
    mail = settings.mail
    return schemas.DiagnosticsResponse(
        provider_enabled=provider.enabled,
        provider_key_present=bool(provider.api_key),
        provider_key_source=provider.api_key_source,
        configured_model=provider.model_override or None,
        candidate_models=list(provider.candidate_models),
        smtp_configured=mail.is_configured,
        smtp_host_present=bool(mail.host),
        smtp_user_present=bool(mail.username),
        smtp_pass_present=bool(mail.password),
        smtp_port=mail.port,
        smtp_secure=mail.secure,
    )
