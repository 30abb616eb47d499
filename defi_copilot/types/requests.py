from typing import Literal, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, description="Natural-language request from the user")


class WalletUpdateRequest(BaseModel):
    avalancheAddress: Optional[str] = Field(default=None, description="Chain address used for transactions")
    privateKey: Optional[str] = Field(default=None, description="Custodial private key for the address")


class RequestFrame(BaseModel):
    """Client-to-server ``request`` frame on /ws"""
    type: Literal["request"]
    content: str = Field(min_length=1, description="Chat message to process")
