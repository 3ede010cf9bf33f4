# newsfeed/deps.py
"""Request-scoped dependencies shared by the routers."""
from typing import Optional

from fastapi import Header, Request

from .feed import SessionRegistry
from .recommender import Recommender


def current_user(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """No header means an anonymous reader, never an error."""
    return (x_user_id or "").strip() or None


def get_recommender(request: Request) -> Recommender:
    return request.app.state.recommender


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions
