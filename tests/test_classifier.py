from __future__ import annotations

from types import SimpleNamespace

import pytest

from warden.detection.classifier import OpenAIClassifier, build_prompt, parse_verdict
from warden.detection.models import Label
from warden.errors import ClassifierError
from warden.testing.fakes import fake_member, profile_of


def test_parse_suspicious_verdict() -> None:
    verdict = parse_verdict('{"label": "suspicious", "confidence": 0.92, "reasons": ["scam link", ""]}')
    assert verdict.label is Label.SUSPICIOUS
    assert verdict.confidence == pytest.approx(0.92)
    assert verdict.reasons == ("AI: scam link",)


def test_parse_clamps_confidence() -> None:
    assert parse_verdict('{"label": "OK", "confidence": 7}').confidence == 1.0


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "not json",
        "[1, 2]",
        '{"label": "MAYBE"}',
        '{"label": "OK", "confidence": "high"}',
        '{"label": "SUSPICIOUS", "confidence": NaN, "reasons": []}',
        '{"label": "SUSPICIOUS", "confidence": Infinity}',
        '{"label": "OK", "confidence": -Infinity}',
    ],
)
def test_unusable_replies_raise(raw) -> None:
    with pytest.raises(ClassifierError):
        parse_verdict(raw)


def test_prompt_includes_recent_messages() -> None:
    profile = profile_of(fake_member(1, "bob", account_age_days=2), ("hello", "free nitro"))
    prompt = build_prompt(profile)
    assert "Username: bob" in prompt
    assert "free nitro" in prompt


class _FakeCompletions:
    def __init__(self, content) -> None:
        self.content = content
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.mark.asyncio
async def test_openai_classifier_requests_json() -> None:
    completions = _FakeCompletions('{"label": "SUSPICIOUS", "confidence": 0.8, "reasons": ["raid"]}')
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    classifier = OpenAIClassifier(api_key="test", model="test-model", client=client)

    verdict = await classifier.analyze(profile_of(fake_member(1, "bob")))

    assert verdict.label is Label.SUSPICIOUS
    assert completions.kwargs["model"] == "test-model"
    assert completions.kwargs["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_openai_classifier_rejects_non_finite_confidence() -> None:
    completions = _FakeCompletions('{"label": "SUSPICIOUS", "confidence": NaN}')
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    classifier = OpenAIClassifier(api_key="test", client=client)

    with pytest.raises(ClassifierError):
        await classifier.analyze(profile_of(fake_member(1, "bob")))
