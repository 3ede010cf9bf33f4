from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..deps import current_user, get_sessions
from ..feed import FeedSession, SessionRegistry
from ..logging_setup import get_logger
from ..schema import LocalEditIn, ScrollIn

logger = get_logger("newsfeed.routes.feed")

router = APIRouter(prefix="/feed/sessions", tags=["Feed"])


def _session(session_id: str, sessions: SessionRegistry = Depends(get_sessions)) -> FeedSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Unknown feed session")
    return session


@router.post("")
async def open_session(
    user_id: Optional[str] = Depends(current_user),
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = await sessions.open(user_id)
    return session.snapshot()

@router.get("/{session_id}")
def get_session_state(session: FeedSession = Depends(_session)):
    return session.snapshot()

@router.post("/{session_id}/refresh")
async def refresh(manual: bool = False, session: FeedSession = Depends(_session)):
    if manual:
        added = await session.manual_refresh()
    else:
        added = await session.refresh()
    return {"added": added, **session.snapshot()}

@router.post("/{session_id}/apply-pending")
def apply_pending(session: FeedSession = Depends(_session)):
    moved = session.apply_pending()
    return {"moved": moved, **session.snapshot()}

@router.post("/{session_id}/scroll")
def scroll(body: ScrollIn, session: FeedSession = Depends(_session)):
    session.set_scroll_offset(body.offset_px)
    return {"at_top": session.at_top, "pending_count": session.pending_count}

@router.patch("/{session_id}/articles/{article_id}")
def edit_article(article_id: str, body: LocalEditIn, session: FeedSession = Depends(_session)):
    touched = session.update_article_locally(article_id, **body.changes)
    return {"article_id": article_id, "updated": touched}

@router.delete("/{session_id}")
async def close_session(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    if not await sessions.close(session_id):
        raise HTTPException(status_code=404, detail="Unknown feed session")
    return {"closed": True}
