from typing import Optional

from fastapi import APIRouter, Depends

from ..deps import current_user, get_recommender
from ..errors import ValidationError
from ..logging_setup import get_logger
from ..recommender import Recommender
from ..schema import MoodIn, MoodPresetIn
from ..workflow import list_mood_presets, process_mood, save_mood_preset
from .recommendations import serialize

logger = get_logger("newsfeed.routes.mood")

router = APIRouter(prefix="/mood", tags=["Mood"])

@router.post("")
def post_mood(body: MoodIn, user_id: Optional[str] = Depends(current_user)):
    if not body.text.strip() and not body.emoji.strip():
        raise ValidationError("mood text or emoji is required")
    profile = process_mood(user_id, body.text, body.emoji, body.context_tags)
    return {"profile": profile.model_dump()}

@router.get("/recommendations")
async def get_mood_recommendations(
    user_id: Optional[str] = Depends(current_user),
    recommender: Recommender = Depends(get_recommender),
):
    scores = await recommender.recommend_by_mood(user_id)
    suppressed = scores is None
    if suppressed:
        scores = recommender.stored(user_id, "mood-based") if user_id else []
    return {"algorithm": "mood-based", "suppressed": suppressed, "items": serialize(scores, recommender)}

@router.get("/presets")
def get_presets(user_id: Optional[str] = Depends(current_user)):
    if not user_id:
        raise ValidationError("user_id is required")
    return {"presets": list_mood_presets(user_id)}

@router.post("/presets")
def post_preset(body: MoodPresetIn, user_id: Optional[str] = Depends(current_user)):
    preset = save_mood_preset(user_id, body.name, body.profile)
    logger.info(f"Mood preset saved: user={user_id} name={preset.name}")
    return {"id": preset.id, "name": preset.name, "profile": preset.profile}
