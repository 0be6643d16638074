"""
API Dependencies

Database session and acting-user dependencies shared by the endpoints.
"""
from typing import Optional

from fastapi import Header

from app.db.session import get_db

__all__ = ["get_db", "get_actor"]


async def get_actor(x_user: Optional[str] = Header(default=None, max_length=100)) -> Optional[str]:
    """
    The acting user, taken from the X-User header.

    Recorded on waves, documents, reservations and inventory
    transactions. Requests without it act anonymously.
    """
    if x_user is None:
        return None
    x_user = x_user.strip()
    return x_user or None
