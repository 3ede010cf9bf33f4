# tests/test_analysis.py
import json
from types import SimpleNamespace

import httpx
import pytest
from openai import APIConnectionError, RateLimitError

from newsfeed import analysis
from newsfeed.errors import UpstreamQuotaFailure
from newsfeed.schema import MoodProfile, QualityDimensions

_REQ = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def completion(payload):
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture()
def fake_client(mocker):
    client = mocker.Mock()
    mocker.patch("newsfeed.analysis._get_client", return_value=client)
    return client


def rate_limited():
    return RateLimitError("Rate limit reached", response=httpx.Response(429, request=_REQ), body=None)


def test_unconfigured_returns_defaults():
    dims = analysis.analyze_quality("Title", "Body")
    assert dims.content_quality == QualityDimensions().content_quality
    assert analysis.derive_mood_profile("happy") == MoodProfile()


def test_quality_scores_parsed_and_clamped(fake_client):
    fake_client.chat.completions.create.return_value = completion(
        {"toxicity_score": 0.1, "bias_score": 1.7, "credibility_score": "0.9", "explanations": ["ok"]}
    )
    dims = analysis.analyze_quality("Title", "Body", "Wire")
    assert dims.toxicity == 0.1
    assert dims.bias == 1.0
    assert dims.credibility == 0.9
    assert dims.factuality == QualityDimensions().factuality
    kwargs = fake_client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}


def test_quality_failures_fall_back(fake_client):
    fake_client.chat.completions.create.side_effect = rate_limited()
    assert analysis.analyze_quality("Title", "Body").bias == QualityDimensions().bias

    fake_client.chat.completions.create.side_effect = APIConnectionError(request=_REQ)
    assert analysis.analyze_quality("Title", "Body").credibility == QualityDimensions().credibility


def test_mood_quota_propagates(fake_client):
    fake_client.chat.completions.create.side_effect = rate_limited()
    with pytest.raises(UpstreamQuotaFailure):
        analysis.derive_mood_profile("anxious", "😟")


def test_mood_malformed_output_is_neutral(fake_client):
    fake_client.chat.completions.create.return_value = completion("not json at all")
    assert analysis.derive_mood_profile("bored") == MoodProfile()

    fake_client.chat.completions.create.return_value = completion([1, 2, 3])
    assert analysis.derive_mood_profile("bored") == MoodProfile()


def test_mood_partial_output_is_filled(fake_client):
    fake_client.chat.completions.create.return_value = completion(
        {"want_depth": 0.9, "tone_words": ["calm", "Calm", "curious"], "energy_level": None}
    )
    profile = analysis.derive_mood_profile("calm sunday", tags=["weekend"])
    assert profile.want_depth == 0.9
    assert profile.tone_words == ["calm", "curious"]
    assert profile.energy_level == MoodProfile().energy_level
    prompt = fake_client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
    assert "Tags: weekend" in prompt


def _art(title, source="Wire", tags=("AI",)):
    return SimpleNamespace(title=title, source_name=source, topic_tags=list(tags), content="Body", description="")


def test_digest_local_fallback():
    digest = analysis.summarize([_art("One"), _art("Two", source="Post", tags=("ai", "Health"))])
    assert digest.article_count == 2
    assert digest.highlights == ["One", "Two"]
    assert digest.topics == ["AI", "Health"]
    assert digest.sources == ["Wire", "Post"]


def test_digest_uses_model_output(fake_client):
    fake_client.chat.completions.create.return_value = completion(
        {"summary": " A quiet day. ", "highlights": ["Rates held"], "topics": ["Economy"]}
    )
    digest = analysis.summarize([_art("One")])
    assert digest.summary == "A quiet day."
    assert digest.highlights == ["Rates held"]
    assert digest.topics == ["Economy"]


def test_digest_quota_propagates(fake_client):
    fake_client.chat.completions.create.side_effect = rate_limited()
    with pytest.raises(UpstreamQuotaFailure):
        analysis.summarize([_art("One")])
