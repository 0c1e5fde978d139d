from sqlmodel import Field, SQLModel
from turnstile.models.base import TimestampModel


class ModelLimit(TimestampModel, SQLModel, table=True):
    """At most ``times`` messages per sliding window of ``duration`` seconds."""

    __tablename__ = 'model_limits'

    model_id: int = Field(primary_key=True)
    product_id: int = Field(primary_key=True)
    times: int
    duration: int
