from datetime import datetime
from sqlmodel import Field, SQLModel
from turnstile.models.base import IDModel, TimestampModel, timestamp_type


class Order(IDModel, TimestampModel, SQLModel, table=True):
    __tablename__ = 'orders'

    user_id: str = Field(index=True)
    product_id: int = Field(index=True)
    start_at: datetime = Field(sa_type=timestamp_type(), sa_column_kwargs={"nullable": False})
    end_at: datetime = Field(sa_type=timestamp_type(), sa_column_kwargs={"nullable": False})
