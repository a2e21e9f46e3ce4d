"""
Shared FastAPI dependencies.
"""

from fastapi import Header


def get_actor(x_user_id: str | None = Header(default=None)) -> str | None:
    """The acting user, recorded on vouchers and batch audit fields."""
    if x_user_id is None:
        return None
    return x_user_id.strip() or None
