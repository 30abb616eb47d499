from typing import Any, Optional

from pydantic import BaseModel, Field


class ChatResponse(BaseModel):
    response: str = Field(description="Markdown answer")
    agentType: str = Field(description="Agent that handled the message, or 'error'")
    subType: str = Field(description="Action within the agent")
    details: Optional[Any] = Field(default=None, description="Raw collaborator payload")


class SafeUser(BaseModel):
    id: int = Field(description="User identifier")
    username: str = Field(description="Login name")
    avalancheAddress: Optional[str] = Field(default=None, description="Stored chain address")

