from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from turnstile.core.errors import InvalidMessageError
from turnstile.models.enums import ChatRole


def _fields(item: Any) -> tuple[Any, Any]:
    if isinstance(item, Mapping):
        return item.get('role'), item.get('content')
    return getattr(item, 'role', None), getattr(item, 'content', None)


def normalize_history(history: Iterable[Any]) -> list[dict[str, str]]:
    """Convert stored messages or ``{role, content}`` mappings to provider messages.

    Roles are matched case-insensitively against ``ChatRole``.
    """
    messages: list[dict[str, str]] = []
    for item in history:
        role, content = _fields(item)
        try:
            parsed = ChatRole.parse(role)
        except ValueError as exc:
            raise InvalidMessageError(f"Unsupported message role: {role!r}") from exc
        if content is None:
            raise InvalidMessageError("History message is missing content")
        messages.append({'role': parsed.value, 'content': str(content)})
    return messages


def build_provider_messages(history: Iterable[Any], content: str) -> list[dict[str, str]]:
    messages = normalize_history(history)
    messages.append({'role': ChatRole.USER.value, 'content': content})
    return messages
