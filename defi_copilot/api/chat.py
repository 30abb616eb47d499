import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..auth.middleware import optional_user
from ..core.orchestrator import AgentOrchestrator
from ..db.models import User
from ..types import ChatRequest, ChatResponse
from .dependencies import get_orchestrator

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)


@router.post("/chat", response_model=ChatResponse)
async def chat_endpoint(
    request: ChatRequest,
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
    user: Optional[User] = Depends(optional_user),
):
    """Classify, execute and format a single chat message"""

    try:
        result = await orchestrator.process_message(request.message, user.id if user else None)
        return result.model_dump()
    except Exception as e:
        logger.error("Chat endpoint error: %s", e, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to process message", "details": str(e)},
        )
