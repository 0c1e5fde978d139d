from functools import lru_cache

from turnstile.core.config import TurnConfig, settings
from turnstile.db.session import engine
from turnstile.services.llm_gateway import LLMGateway
from turnstile.services.quota_ledger import QuotaLedger
from turnstile.services.session_store import SessionStore
from turnstile.services.transcript_persister import TranscriptPersister
from turnstile.services.turn_orchestrator import TurnOrchestrator


@lru_cache
def get_turn_config() -> TurnConfig:
    return TurnConfig.from_settings(settings)


def get_quota_ledger() -> QuotaLedger:
    return QuotaLedger(engine, get_turn_config())


def get_session_store() -> SessionStore:
    return SessionStore(engine, get_turn_config())


def get_turn_orchestrator() -> TurnOrchestrator:
    config = get_turn_config()
    return TurnOrchestrator(
        engine,
        config,
        persister=TranscriptPersister(engine),
        gateway=LLMGateway(config.provider_base_url),
    )
