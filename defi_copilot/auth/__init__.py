from .service import AuthService, hash_password, verify_password
from .models import Credentials, SESSION_USER_KEY
from .middleware import (
    login_session,
    logout_session,
    optional_user,
    require_user,
    session_user_id,
)

__all__ = [
    "AuthService",
    "hash_password",
    "verify_password",
    "Credentials",
    "SESSION_USER_KEY",
    "login_session",
    "logout_session",
    "optional_user",
    "require_user",
    "session_user_id",
]
