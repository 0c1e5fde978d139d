from enum import Enum
import sqlalchemy as sa
from sqlalchemy import Column


class ChatRole(str, Enum):
    USER = 'user'
    ASSISTANT = 'assistant'
    SYSTEM = 'system'

    @classmethod
    def parse(cls, value: object) -> 'ChatRole':
        if isinstance(value, cls):
            return value
        if isinstance(value, Enum):
            value = value.value
        return cls(str(value).strip().lower())


class ErrorPolicy(str, Enum):
    SILENT = 'silent'
    SURFACE = 'surface'


class CancelPolicy(str, Enum):
    """What happens to a turn the consumer abandons.

    ``COMMIT_PARTIAL`` stores only the tokens already handed to the consumer,
    not the ones still buffered in the stream queue.
    """

    DISCARD = 'discard'
    COMMIT_PARTIAL = 'commit_partial'


class HistoryWindow(str, Enum):
    """Which end of a session a history limit keeps; both return oldest first."""

    OLDEST = 'oldest'
    LATEST = 'latest'


def enum_column(enum_cls: type[Enum], name: str) -> Column:
    return Column(
        sa.Enum(
            enum_cls,
            values_callable=lambda enum: [item.value for item in enum],
            name=name,
        ),
        nullable=False,
    )
