# backend/app/config.py

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# --- Provider Configuration ---
GROQ_API_BASE = "https://api.groq.com/openai/v1"
# Tried in order after GROQ_MODEL (if set)
FALLBACK_MODELS = [
    "llama-3.3-70b-versatile",
    "llama-3.1-8b-instant",
    "gemma2-9b-it",
]
DEFAULT_MAX_TOKENS = 1024
SUMMARY_TEMPERATURE = 0.2
DEFAULT_PROVIDER_TIMEOUT = 60.0

# --- Mail Configuration ---
DEFAULT_SMTP_PORT = 587
IMPLICIT_TLS_PORT = 465
DEFAULT_SMTP_TIMEOUT = 30.0
DEFAULT_FROM_NAME = "Meeting Summarizer"

# --- Server Configuration ---
DEFAULT_PORT = 3000
DEFAULT_UPLOAD_DIR = Path("uploads")

TRUE_VALUES = {"true", "1", "yes", "y", "on"}

# --- Prompt Templates ---
DEFAULT_INSTRUCTION = "Summarize this meeting transcript."

SYSTEM_PROMPT = (
    "You are an expert meeting assistant. Produce a concise, well-structured "
    "summary of the meeting transcript you are given. Use short headings and "
    "bullet points. Always include the key discussion points, the decisions "
    "that were made and the action items (with owners and due dates when they "
    "are mentioned). Follow the user's instruction about focus, tone and "
    "length whenever one is given."
)

PROMPT_TEMPLATE_USER = """Instruction: {instruction}

--- START TRANSCRIPT ---
{transcript}
--- END TRANSCRIPT ---"""

SIMULATED_PREVIEW_CHARS = 250

SIMULATED_SUMMARY_TEMPLATE = """--- AI-Generated Summary (Simulated) ---

Prompt: "{instruction}"

Transcript beginning:
"{preview}..."

[This is a simulated summary. No working AI provider configuration was found on the server: set GROQ_API_KEY (or GROQ_API_KEY_FILE) and optionally GROQ_MODEL to get a real summary.]"""

# --- Email Templates ---
EMAIL_SUBJECT = "Your AI-Generated Meeting Summary"
EMAIL_BODY_TEMPLATE = "Here is the meeting summary you requested:\n\n---\n\n{summary}"


# ============================
# Value Helpers
# ============================

def normalize_value(value: Optional[str]) -> str:
    """Trims whitespace and strips one layer of matching surrounding quotes."""
    if value is None:
        return ""
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        value = value[1:-1]
    return value.strip()


def parse_boolean(value: Optional[str]) -> bool:
    """Returns True for true/1/yes/y/on (any case), False for anything else."""
    return normalize_value(value).lower() in TRUE_VALUES


def _parse_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = normalize_value(environ.get(name))
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: '{raw}'. Using default {default}.")
        return default


def _parse_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = normalize_value(environ.get(name))
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid number for {name}: '{raw}'. Using default {default}.")
        return default


# ============================
# Secret Resolution
# ============================

@dataclass(frozen=True)
class ResolvedSecret:
    value: str = ""
    source: Optional[str] = None  # "env", "file" or None when absent

    @property
    def present(self) -> bool:
        return bool(self.value)


class EnvValueSource:
    """Reads a secret directly from the environment variable of the same name."""

    source = "env"

    def resolve(self, name: str, environ: Mapping[str, str]) -> str:
        return normalize_value(environ.get(name))


class FileValueSource:
    """
    Reads a secret from the file referenced by `<name>_FILE` or `<name>_PATH`.

    Read failures are logged and treated as a missing secret.
    """

    source = "file"
    suffixes = ("_FILE", "_PATH")

    def resolve(self, name: str, environ: Mapping[str, str]) -> str:
        for suffix in self.suffixes:
            path = normalize_value(environ.get(f"{name}{suffix}"))
            if not path:
                continue
            try:
                value = normalize_value(Path(path).read_text(encoding="utf-8"))
            except OSError as e:
                logger.warning(f"Could not read {name}{suffix} ({path}): {e}")
                continue
            if value:
                return value
        return ""


SECRET_SOURCES = (EnvValueSource(), FileValueSource())


def lookup_secret(name: str, environ: Optional[Mapping[str, str]] = None) -> ResolvedSecret:
    """
    Resolves a secret and reports which mechanism supplied it.

    A directly set, non-blank environment value wins; otherwise the file
    referenced by `<name>_FILE` / `<name>_PATH` is read.

    Args:
        name: The environment variable name, e.g. "GROQ_API_KEY".
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        ResolvedSecret with the normalized value and its source, or an empty
        ResolvedSecret when nothing is configured.
    """
    environ = os.environ if environ is None else environ
    for strategy in SECRET_SOURCES:
        value = strategy.resolve(name, environ)
        if value:
            return ResolvedSecret(value=value, source=strategy.source)
    return ResolvedSecret()


def resolve_secret(name: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Returns the resolved secret value, or an empty string when absent."""
    return lookup_secret(name, environ).value


# ============================
# Configuration Objects
# ============================

def build_candidate_models(model_override: str) -> Tuple[str, ...]:
    """Operator override first, then the fixed fallback list, without duplicates."""
    candidates: List[str] = []
    for model in [model_override, *FALLBACK_MODELS]:
        if model and model not in candidates:
            candidates.append(model)
    return tuple(candidates)


@dataclass(frozen=True)
class ProviderConfig:
    api_key: str = ""
    api_key_source: Optional[str] = None
    model_override: str = ""
    candidate_models: Tuple[str, ...] = field(default_factory=lambda: tuple(FALLBACK_MODELS))
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = SUMMARY_TEMPERATURE
    api_base: str = GROQ_API_BASE
    timeout_seconds: float = DEFAULT_PROVIDER_TIMEOUT

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class MailConfig:
    host: str = ""
    port: int = DEFAULT_SMTP_PORT
    secure: bool = False
    username: str = ""
    password: str = ""
    from_address: str = ""
    from_name: str = DEFAULT_FROM_NAME
    timeout_seconds: float = DEFAULT_SMTP_TIMEOUT

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.username and self.password)

    @property
    def sender(self) -> str:
        return self.from_address or self.username


@dataclass(frozen=True)
class Settings:
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    mail: MailConfig = field(default_factory=MailConfig)
    upload_dir: Path = DEFAULT_UPLOAD_DIR
    port: int = DEFAULT_PORT


def load_provider_config(environ: Optional[Mapping[str, str]] = None) -> ProviderConfig:
    environ = os.environ if environ is None else environ
    api_key = lookup_secret("GROQ_API_KEY", environ)
    model_override = normalize_value(environ.get("GROQ_MODEL"))
    api_base = normalize_value(environ.get("GROQ_API_BASE")) or GROQ_API_BASE
    return ProviderConfig(
        api_key=api_key.value,
        api_key_source=api_key.source,
        model_override=model_override,
        candidate_models=build_candidate_models(model_override),
        max_tokens=_parse_int(environ, "GROQ_MAX_TOKENS", DEFAULT_MAX_TOKENS),
        api_base=api_base.rstrip("/"),
        timeout_seconds=_parse_float(environ, "GROQ_TIMEOUT_SECONDS", DEFAULT_PROVIDER_TIMEOUT),
    )


def load_mail_config(environ: Optional[Mapping[str, str]] = None) -> MailConfig:
    environ = os.environ if environ is None else environ
    port = _parse_int(environ, "SMTP_PORT", DEFAULT_SMTP_PORT)
    username = normalize_value(environ.get("SMTP_USER"))
    return MailConfig(
        host=normalize_value(environ.get("SMTP_HOST")),
        port=port,
        # Port 465 means implicit TLS even without SMTP_SECURE
        secure=parse_boolean(environ.get("SMTP_SECURE")) or port == IMPLICIT_TLS_PORT,
        username=username,
        password=resolve_secret("SMTP_PASS", environ),
        from_address=normalize_value(environ.get("EMAIL_FROM")) or username,
        from_name=normalize_value(environ.get("EMAIL_FROM_NAME")) or DEFAULT_FROM_NAME,
        timeout_seconds=_parse_float(environ, "SMTP_TIMEOUT_SECONDS", DEFAULT_SMTP_TIMEOUT),
    )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Builds the full application configuration from environment variables.

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        An immutable Settings object shared by all requests.
    """
    environ = os.environ if environ is None else environ
    upload_dir = normalize_value(environ.get("UPLOAD_DIR"))
    settings = Settings(
        provider=load_provider_config(environ),
        mail=load_mail_config(environ),
        upload_dir=Path(upload_dir) if upload_dir else DEFAULT_UPLOAD_DIR,
        port=_parse_int(environ, "PORT", DEFAULT_PORT),
    )

    if not settings.provider.enabled:
        logger.warning(
            "GROQ_API_KEY is not set (directly or via GROQ_API_KEY_FILE/_PATH). "
            "Summaries will be simulated."
        )
    if not settings.mail.is_configured:
        logger.warning(
            "SMTP_HOST, SMTP_USER or SMTP_PASS missing. Email sharing is disabled."
        )
    return settings
