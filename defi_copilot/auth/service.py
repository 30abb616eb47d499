"""
Username/password authentication backed by the user store.

Passwords are stored as ``<hex scrypt hash>.<hex salt>``.
"""

import hashlib
import hmac
import secrets

from ..db.models import User
from ..db.users import UserStore
from ..errors import AuthenticationFailed, ConflictError

SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
KEY_LENGTH = 64


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    derived = hashlib.scrypt(
        password.encode(), salt=salt.encode(), n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P, dklen=KEY_LENGTH
    )
    return f"{derived.hex()}.{salt}"


def verify_password(password: str, stored: str) -> bool:
    try:
        hashed, salt = stored.split(".", 1)
    except ValueError:
        return False
    derived = hashlib.scrypt(
        password.encode(), salt=salt.encode(), n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P, dklen=KEY_LENGTH
    )
    return hmac.compare_digest(derived.hex(), hashed)


class AuthService:
    """
    Registration and login.

    Flow:
    1. Client registers via POST /api/register (logged in immediately)
    2. Client logs in via POST /api/login
    3. The user id is kept in the signed session cookie
    4. /ws upgrades and protected routes read it back from the session
    """

    def __init__(self, users: UserStore):
        self.users = users

    async def register(self, username: str, password: str) -> User:
        if await self.users.get_user_by_username(username):
            raise ConflictError("Username already exists")
        return await self.users.create_user(username, hash_password(password))

    async def login(self, username: str, password: str) -> User:
        user = await self.users.get_user_by_username(username)
        if user is None or not verify_password(password, user.password):
            raise AuthenticationFailed("Invalid username or password")
        return user
