import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..auth.middleware import require_user
from ..db.models import User
from ..db.users import UserStore
from ..errors import NotFoundError
from ..types import SafeUser, WalletUpdateRequest
from .dependencies import get_user_store

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)


@router.post("/update-wallet", response_model=SafeUser)
async def update_wallet(
    request: WalletUpdateRequest,
    user: User = Depends(require_user),
    users: UserStore = Depends(get_user_store),
):
    """Store the caller's chain address and key; never echoes credentials back."""

    try:
        updated = await users.update_user_wallet(
            user.id,
            avalanche_address=request.avalancheAddress,
            private_key=request.privateKey,
        )
    except NotFoundError:
        raise
    except Exception as e:
        logger.error("Update wallet error: %s", e, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to update wallet", "details": str(e)},
        )
    return updated.to_safe_dict()
