from __future__ import annotations


class TurnstileError(Exception):
    """Base class for failures raised by the turn pipeline."""


class NotFoundError(TurnstileError):
    def __init__(self, entity: str, key: object) -> None:
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class AuthorizationError(TurnstileError):
    pass


class InvalidMessageError(TurnstileError):
    pass


class ProviderStreamError(TurnstileError):
    pass


class PersistenceError(TurnstileError):
    pass
