# backend/app/services.py

import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import fitz  # PyMuPDF
import httpx

from . import config

# Set up logger
logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


# ============================
# Errors
# ============================

class SummaryError(Exception):
    """Base error for /generate-summary. Carries the HTTP status and client message."""

    status_code = 500
    message = "Failed to process transcript."

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)


class MissingTranscriptError(SummaryError):
    status_code = 400
    message = "No transcript file uploaded."


class EmptyTranscriptError(SummaryError):
    status_code = 400
    message = "Uploaded file contains no extractable text."


class TranscriptProcessingError(SummaryError):
    status_code = 500
    message = "Failed to process transcript."


class ProviderCallError(Exception):
    """A single candidate-model call failed. Never leaves this module."""


# ============================
# Upload Staging & Cleanup
# ============================

@dataclass(frozen=True)
class StagedUpload:
    path: Path
    filename: str
    content_type: Optional[str]
    size: int


def stage_upload(
    content: bytes, filename: Optional[str], content_type: Optional[str], upload_dir: Path
) -> StagedUpload:
    """
    Writes uploaded bytes to a uniquely named temporary file.

    Args:
        content: Raw bytes of the uploaded file.
        filename: Original client filename (may be empty).
        content_type: Declared MIME type.
        upload_dir: Directory for temporary uploads, created if needed.

    Returns:
        StagedUpload describing the temporary file.
    """
    base_filename = os.path.basename(filename or "")
    suffix = Path(base_filename).suffix.lower()
    temp_path = None
    try:
        upload_dir.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix="transcript_", suffix=suffix, dir=upload_dir)
        with os.fdopen(fd, "wb") as buffer:
            buffer.write(content)
    except OSError as e:
        logger.error(f"Could not stage upload '{base_filename}': {e}", exc_info=True)
        if temp_path is not None:
            try:
                os.remove(temp_path)
            except OSError as rm_err:
                logger.error(f"Error deleting partial upload {temp_path}: {rm_err}")
        raise TranscriptProcessingError(f"Could not stage upload: {e}") from e

    logger.info(f"Staged upload '{base_filename}' ({len(content)} bytes) at {temp_path}")
    return StagedUpload(
        path=Path(temp_path), filename=base_filename, content_type=content_type, size=len(content)
    )


def remove_upload(upload: StagedUpload) -> None:
    """Deletes the temporary upload. Failures are logged, never raised."""
    try:
        os.remove(upload.path)
        logger.debug(f"Removed temp transcript file: {upload.path}")
    except OSError as rm_err:
        logger.error(f"Error deleting temp transcript file {upload.path}: {rm_err}")


# ============================
# Text Extraction
# ============================

def is_pdf(content_type: Optional[str], filename: Optional[str]) -> bool:
    if content_type and content_type.split(";")[0].strip().lower() == PDF_MIME_TYPE:
        return True
    return bool(filename) and filename.lower().endswith(".pdf")


def extract_pdf_text(path: Path) -> str:
    """Extracts text from every page of a PDF, pages separated by blank lines."""
    doc_fitz = fitz.open(stream=path.read_bytes(), filetype="pdf")
    try:
        page_texts = []
        for page in doc_fitz:
            # Sorting keeps reading order for multi-column layouts
            page_text = page.get_text("text", sort=True).strip()
            if page_text:
                page_texts.append(page_text)
        logger.info(f"Extracted text from {len(doc_fitz)} PDF page(s).")
        return "\n\n".join(page_texts)
    finally:
        doc_fitz.close()


def extract_transcript_text(upload: StagedUpload) -> str:
    """
    Extracts text from a staged upload and always deletes the temporary file.

    PDFs (by MIME type or `.pdf` suffix) go through PyMuPDF, everything else
    is decoded as UTF-8.

    Args:
        upload: The staged upload.

    Returns:
        The extracted text (not yet validated for emptiness).

    Raises:
        TranscriptProcessingError: If extraction fails for any reason.
    """
    try:
        if is_pdf(upload.content_type, upload.filename):
            logger.info(f"Extracting text from PDF '{upload.filename}'...")
            return extract_pdf_text(upload.path)
        logger.info(f"Reading '{upload.filename}' as UTF-8 text...")
        return upload.path.read_bytes().decode("utf-8", errors="replace")
    except Exception as e:
        logger.error(f"Failed to extract text from '{upload.filename}': {e}", exc_info=True)
        raise TranscriptProcessingError(f"Extraction failed: {e}") from e
    finally:
        remove_upload(upload)


# ============================
# Provider Calls
# ============================

def effective_instruction(instruction: Optional[str]) -> str:
    return instruction.strip() if instruction and instruction.strip() else config.DEFAULT_INSTRUCTION


def build_messages(transcript: str, instruction: Optional[str]) -> List[Dict[str, str]]:
    user_prompt = config.PROMPT_TEMPLATE_USER.format(
        instruction=effective_instruction(instruction), transcript=transcript
    )
    return [
        {"role": "system", "content": config.SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def build_simulated_summary(transcript: str, instruction: Optional[str]) -> str:
    """Deterministic placeholder used when no provider call succeeds."""
    return config.SIMULATED_SUMMARY_TEMPLATE.format(
        instruction=effective_instruction(instruction),
        preview=transcript[: config.SIMULATED_PREVIEW_CHARS],
    )


async def chat_complete(
    client: httpx.AsyncClient,
    messages: List[Dict[str, str]],
    model: str,
    provider: config.ProviderConfig,
) -> str:
    """
    Issues one chat-completion call against the provider.

    Returns:
        The stripped message content.

    Raises:
        ProviderCallError: On transport/HTTP errors, malformed payloads or empty content.
    """
    payload = {
        "model": model,
        "messages": messages,
        "temperature": provider.temperature,
        "max_tokens": provider.max_tokens,
    }
    try:
        response = await client.post(
            f"{provider.api_base}/chat/completions",
            headers={"Authorization": f"Bearer {provider.api_key}"},
            json=payload,
        )
        response.raise_for_status()
        data = response.json()
        content = data["choices"][0]["message"]["content"] or ""
        if not isinstance(content, str):
            raise TypeError(f"unexpected content type {type(content).__name__}")
    except httpx.HTTPStatusError as e:
        raise ProviderCallError(f"HTTP {e.response.status_code}: {e.response.text[:200]}") from e
    except httpx.HTTPError as e:
        raise ProviderCallError(f"Transport error: {e}") from e
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise ProviderCallError(f"Malformed provider response: {e}") from e

    content = content.strip()
    if not content:
        raise ProviderCallError("Provider returned empty content.")
    return content


async def summarize_text(
    transcript: str,
    instruction: Optional[str],
    provider: config.ProviderConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Summarizes text with the first candidate model that answers.

    Candidate models are tried in order and the first non-empty result wins.
    Failures are logged and the next model is tried. If no key is configured
    or every model fails, a simulated summary is returned instead of an error.

    Args:
        transcript: The extracted transcript text.
        instruction: Optional user instruction.
        provider: Provider configuration.
        transport: Optional httpx transport (used by tests).

    Returns:
        The provider summary or the simulated placeholder.
    """
    if not provider.enabled:
        logger.info("No provider credentials configured. Returning simulated summary.")
        return build_simulated_summary(transcript, instruction)

    messages = build_messages(transcript, instruction)
    async with httpx.AsyncClient(timeout=provider.timeout_seconds, transport=transport) as client:
        for model in provider.candidate_models:
            logger.info(f"Requesting summary from model '{model}' ({len(transcript)} chars)...")
            call_start = time.time()
            try:
                summary = await chat_complete(client, messages, model, provider)
            except ProviderCallError as e:
                logger.warning(f"Model '{model}' failed: {e}")
                continue
            logger.info(f"Model '{model}' returned a summary in {time.time() - call_start:.2f}s.")
            return summary

    logger.error(
        f"All candidate models failed ({', '.join(provider.candidate_models)}). "
        "Returning simulated summary."
    )
    return build_simulated_summary(transcript, instruction)


# ============================
# Core Service Function
# ============================

async def generate_summary(
    upload: Optional[StagedUpload],
    instruction: Optional[str],
    settings: config.Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    Produces a summary for an uploaded transcript.

    Args:
        upload: The staged upload, or None if no file was sent.
        instruction: Optional free-text instruction.
        settings: Application settings.
        transport: Optional httpx transport for the provider client.

    Returns:
        The summary text.

    Raises:
        MissingTranscriptError: No upload was given.
        TranscriptProcessingError: Text extraction failed.
        EmptyTranscriptError: The extracted text is blank.
    """
    if upload is None:
        raise MissingTranscriptError()

    transcript = extract_transcript_text(upload)
    if not transcript.strip():
        logger.warning(f"No extractable text in '{upload.filename}'.")
        raise EmptyTranscriptError()

    logger.info(f"Extracted {len(transcript)} chars from '{upload.filename}'.")
    return await summarize_text(transcript, instruction, settings.provider, transport=transport)
