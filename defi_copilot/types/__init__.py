from .requests import ChatRequest, RequestFrame, WalletUpdateRequest
from .responses import ChatResponse, SafeUser

__all__ = [
    "ChatRequest",
    "RequestFrame",
    "WalletUpdateRequest",
    "ChatResponse",
    "SafeUser",
]
