from pumpwatch.models.base import Base
from pumpwatch.models.token import TokenRecord, TokenTradeRecord

__all__ = [
    "Base",
    "TokenRecord",
    "TokenTradeRecord",
]
