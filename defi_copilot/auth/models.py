"""
Authentication request models.
"""

from pydantic import BaseModel, Field


SESSION_USER_KEY = "user_id"


class Credentials(BaseModel):
    """Username/password pair used by register and login."""
    username: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=1, max_length=256)
