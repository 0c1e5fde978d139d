from turnstile.models.base import IDModel, TimestampModel
from turnstile.models.user import User
from turnstile.models.product import Product
from turnstile.models.chat_model import ChatModel
from turnstile.models.model_limit import ModelLimit
from turnstile.models.order import Order
from turnstile.models.chat_session import ChatSession
from turnstile.models.chat_message import ChatMessage

__all__ = [
    'IDModel',
    'TimestampModel',
    'User',
    'Product',
    'ChatModel',
    'ModelLimit',
    'Order',
    'ChatSession',
    'ChatMessage',
]
