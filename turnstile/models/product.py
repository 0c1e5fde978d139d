from sqlmodel import Field, SQLModel
from turnstile.models.base import TimestampModel


class Product(TimestampModel, SQLModel, table=True):
    __tablename__ = 'products'

    id: int = Field(primary_key=True)
    name: str
