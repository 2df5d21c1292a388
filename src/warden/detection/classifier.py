from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from openai import AsyncOpenAI, OpenAIError

from ..errors import ClassifierError
from .confidence import clamp
from .models import ClassifierVerdict, Label, ProfileData

log = logging.getLogger("warden.classifier")

SYSTEM_PROMPT = (
    "You are a Discord moderation assistant. Based on the user's profile, decide whether the "
    "user is a spammer, scammer or raid account. Consider account age, username, how recently "
    "they joined and the content of their recent messages. Respond with a JSON object: "
    '{"label": "OK" | "SUSPICIOUS", "confidence": number between 0 and 1, '
    '"reasons": [short strings]}.'
)


class Classifier(Protocol):
    async def analyze(self, profile: ProfileData) -> ClassifierVerdict: ...


def _describe_age(when: Optional[datetime], now: datetime) -> str:
    if when is None:
        return "unknown"
    days = (now - when).total_seconds() / 86400
    return f"{when.date().isoformat()} ({days:.1f} days ago)"


def build_prompt(profile: ProfileData, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    lines = [
        "Please analyze this Discord user profile:",
        f"Username: {profile.username}",
        f"Account created: {_describe_age(profile.account_created_at, now)}",
        f"Joined server: {_describe_age(profile.joined_at, now)}",
    ]
    if profile.recent_messages:
        excerpt = [m[:300] for m in profile.recent_messages[-5:]]
        lines.append("Recent messages: " + json.dumps(excerpt, ensure_ascii=False))
    return "\n".join(lines)


def parse_verdict(raw: Optional[str]) -> ClassifierVerdict:
    """Parse the model's JSON reply. Anything unusable is a ClassifierError."""
    if not raw:
        raise ClassifierError("Classifier returned an empty response")
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ClassifierError(f"Classifier returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ClassifierError("Classifier response is not an object")

    label_raw = str(data.get("label", "")).strip().upper()
    try:
        label = Label(label_raw)
    except ValueError as e:
        raise ClassifierError(f"Classifier returned unknown label {label_raw!r}") from e

    try:
        raw_confidence = float(data.get("confidence", 0.8 if label is Label.SUSPICIOUS else 0.2))
    except (TypeError, ValueError) as e:
        raise ClassifierError("Classifier confidence is not a number") from e
    if not math.isfinite(raw_confidence):
        raise ClassifierError(f"Classifier confidence is not finite: {raw_confidence}")
    confidence = clamp(raw_confidence)

    reasons_raw = data.get("reasons") or []
    if isinstance(reasons_raw, str):
        reasons_raw = [reasons_raw]
    reasons = tuple(f"AI: {r}" for r in reasons_raw if isinstance(r, str) and r.strip())
    return ClassifierVerdict(label=label, confidence=confidence, reasons=reasons)


class OpenAIClassifier:
    """Chat-completions classifier. The caller owns the timeout."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url or None)

    async def analyze(self, profile: ProfileData) -> ClassifierVerdict:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(profile)},
                ],
                temperature=0.3,
                max_tokens=200,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            raise ClassifierError(f"Classifier request failed: {e}") from e

        if not response.choices:
            raise ClassifierError("Classifier returned no choices")
        verdict = parse_verdict(response.choices[0].message.content)
        log.debug("Classified %s as %s (%.2f)", profile.user_id, verdict.label.value, verdict.confidence)
        return verdict
