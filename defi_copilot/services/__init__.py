"""Background services"""

from .price_feed import (
    ERROR,
    MAX_RECONNECT_ATTEMPTS_REACHED,
    PRICE_UPDATE,
    PriceFeedManager,
)

__all__ = [
    "PriceFeedManager",
    "PRICE_UPDATE",
    "ERROR",
    "MAX_RECONNECT_ATTEMPTS_REACHED",
]
