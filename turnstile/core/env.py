from __future__ import annotations

from turnstile.core.config import settings


def resolve_provider_credential(explicit: str | None) -> str:
    """Return the caller's provider key, falling back to ``PROVIDER_API_KEY``/``OPENAI_API_KEY``."""
    if explicit and explicit.strip():
        return explicit.strip()
    value = (settings.PROVIDER_API_KEY or '').strip()
    if not value:
        raise RuntimeError("PROVIDER_API_KEY is missing in environment or .env")
    return value
