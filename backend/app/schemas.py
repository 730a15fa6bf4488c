from pydantic import BaseModel
from typing import List, Optional

class SummaryResponse(BaseModel):
    """Response model for the /generate-summary endpoint."""
    summary: str

class ErrorResponse(BaseModel):
    error: str

class ShareSummaryRequest(BaseModel):
    """Request body for /share-summary. Blank fields are rejected by the dispatcher."""
    summary: Optional[str] = ""
    recipient: Optional[str] = ""

class MessageResponse(BaseModel):
    message: str

class HealthResponse(BaseModel):
    status: str

class DiagnosticsResponse(BaseModel):
    """Configuration presence flags. Never carries secret values."""
    provider_enabled: bool
    provider_key_present: bool
    provider_key_source: Optional[str] = None # "env" or "file"
    configured_model: Optional[str] = None
    candidate_models: List[str]
    smtp_configured: bool
    smtp_host_present: bool
    smtp_user_present: bool
    smtp_pass_present: bool
    smtp_port: int
    smtp_secure: bool
