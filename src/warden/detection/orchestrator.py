from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from ..constants import HIGH_CONFIDENCE, HISTORY_LOOKBACK_HOURS
from ..errors import ClassifierError
from ..refs import MessageRef
from ..services.base import utcnow
from ..services.detection_store import DetectionStore
from ..services.server_store import ServerConfig, ServerStore
from .classifier import Classifier
from .confidence import clamp
from .heuristics import HISTORY_WEIGHT, HeuristicAnalyzer, HeuristicVerdict
from .models import ClassifierVerdict, DetectionResult, Label, ProfileData, SignalType

log = logging.getLogger("warden.detection")

# Below this a heuristic score is clean and the classifier is not consulted.
AMBIGUITY_FLOOR = 0.3
# Final scores at or above this are labelled SUSPICIOUS.
SUSPICION_FLOOR = 0.5
# Applied when the classifier vouches for the actor.
AI_OK_DISCOUNT = 0.3
# Added to a join score when the classifier flags the profile.
AI_JOIN_WEIGHT = 0.7


class DetectionOrchestrator:
    """Turns one trigger into one DetectionResult and records it as a DetectionEvent.

    The heuristics always run. The classifier is only consulted for ambiguous
    signals, and its failures never escape: the heuristic verdict stands. A firm
    match (keyword or message rate) is never downgraded by the classifier.
    """

    def __init__(
        self,
        *,
        server_store: ServerStore,
        detection_store: DetectionStore,
        heuristics: Optional[HeuristicAnalyzer] = None,
        classifier: Optional[Classifier] = None,
        classifier_timeout_seconds: float = 10.0,
    ) -> None:
        self.servers = server_store
        self.detections = detection_store
        self.heuristics = heuristics or HeuristicAnalyzer()
        self.classifier = classifier
        self.classifier_timeout = classifier_timeout_seconds

    async def detect_message(
        self,
        server_id: int,
        actor_id: int,
        content: str,
        profile: ProfileData,
        *,
        source: Optional[MessageRef] = None,
    ) -> DetectionResult:
        cfg = await self.servers.ensure(server_id)
        now = utcnow()

        heuristic = self.heuristics.analyze_message(cfg, profile, content, now)
        score = heuristic.score
        reasons = list(heuristic.reasons)
        if await self._has_recent_high_confidence(server_id, actor_id, now):
            score = clamp(score + HISTORY_WEIGHT)
            reasons.insert(0, "Recent high-confidence suspicious activity")

        used_ai = False
        if score >= cfg.confidence_threshold:
            label = Label.SUSPICIOUS
        else:
            label = Label.SUSPICIOUS if heuristic.firm or score >= SUSPICION_FLOOR else Label.OK
            if self._is_ambiguous(cfg, score, heuristic, profile, now):
                profile = _with_message(profile, content)
                verdict = await self._classify(profile)
                if verdict is not None:
                    used_ai = True
                    if verdict.is_suspicious:
                        label = Label.SUSPICIOUS
                        score = max(score, verdict.confidence)
                        reasons.extend(verdict.reasons)
                    elif heuristic.firm:
                        # A keyword or rate match stands; the classifier can only add to it.
                        reasons.append("AI analysis did not confirm the match")
                    else:
                        score = max(0.0, score - AI_OK_DISCOUNT)
                        label = Label.SUSPICIOUS if score >= SUSPICION_FLOOR else Label.OK
                        reasons.append("AI analysis indicates the user is likely legitimate")

        result = DetectionResult(
            label=label,
            confidence=clamp(score),
            reasons=tuple(reasons),
            trigger_source=SignalType.MESSAGE,
            trigger_content=content,
            used_ai=used_ai,
        )
        return await self._persist(server_id, actor_id, result, source)

    async def detect_new_join(self, server_id: int, actor_id: int, profile: ProfileData) -> DetectionResult:
        cfg = await self.servers.ensure(server_id)
        now = utcnow()

        heuristic = self.heuristics.analyze_join(cfg, profile, now)
        score = heuristic.score
        reasons = list(heuristic.reasons)
        used_ai = False

        if score < cfg.confidence_threshold and cfg.use_ai_on_join:
            verdict = await self._classify(profile)
            if verdict is not None:
                used_ai = True
                if verdict.is_suspicious:
                    score = clamp(score + AI_JOIN_WEIGHT)
                    reasons.extend(verdict.reasons)
                else:
                    score = max(0.0, score - AI_OK_DISCOUNT)

        result = DetectionResult(
            label=Label.SUSPICIOUS if score >= SUSPICION_FLOOR else Label.OK,
            confidence=clamp(score),
            reasons=tuple(reasons),
            trigger_source=SignalType.JOIN,
            trigger_content=None,
            used_ai=used_ai,
        )
        return await self._persist(server_id, actor_id, result, None)

    async def record_manual(
        self,
        server_id: int,
        actor_id: int,
        *,
        signal_type: SignalType,
        reporter_id: int,
        reason: Optional[str] = None,
        source: Optional[MessageRef] = None,
    ) -> DetectionResult:
        """A moderator flag or a member report. Always SUSPICIOUS at full confidence."""
        if signal_type not in (SignalType.REPORT, SignalType.MANUAL):
            raise ValueError(f"{signal_type.value} is not a manual signal")
        await self.servers.ensure(server_id)
        who = "Reported by" if signal_type is SignalType.REPORT else "Flagged by moderator"
        reasons = [f"{who} <@{reporter_id}>"]
        if reason:
            reasons.append(reason)
        result = DetectionResult(
            label=Label.SUSPICIOUS,
            confidence=1.0,
            reasons=tuple(reasons),
            trigger_source=signal_type,
            trigger_content=reason,
        )
        return await self._persist(server_id, actor_id, result, source, metadata={"reporter_id": reporter_id})

    def _is_ambiguous(
        self,
        cfg: ServerConfig,
        score: float,
        heuristic: HeuristicVerdict,
        profile: ProfileData,
        now: datetime,
    ) -> bool:
        if self.classifier is None:
            return False
        if score >= AMBIGUITY_FLOOR:
            return True
        account_new = profile.account_created_at is not None and now - profile.account_created_at <= timedelta(
            days=cfg.new_account_days
        )
        member_new = profile.joined_at is not None and now - profile.joined_at <= timedelta(days=cfg.new_member_days)
        return account_new or member_new

    async def _classify(self, profile: ProfileData) -> Optional[ClassifierVerdict]:
        if self.classifier is None:
            return None
        try:
            return await asyncio.wait_for(self.classifier.analyze(profile), timeout=self.classifier_timeout)
        except asyncio.TimeoutError:
            log.warning("Classifier timed out after %.1fs for user %s", self.classifier_timeout, profile.user_id)
        except ClassifierError as e:
            log.warning("Classifier failed for user %s: %s", profile.user_id, e)
        except Exception:
            log.exception("Classifier raised unexpectedly for user %s", profile.user_id)
        return None

    async def _has_recent_high_confidence(self, server_id: int, actor_id: int, now: datetime) -> bool:
        try:
            recent = await self.detections.recent_for_actor(
                server_id, actor_id, since=now - timedelta(hours=HISTORY_LOOKBACK_HOURS)
            )
        except Exception:
            log.exception("Could not load detection history for %s/%s", server_id, actor_id)
            return False
        return any(e.label is Label.SUSPICIOUS and e.confidence >= HIGH_CONFIDENCE for e in recent)

    async def _persist(
        self,
        server_id: int,
        actor_id: int,
        result: DetectionResult,
        source: Optional[MessageRef],
        *,
        metadata: Optional[dict] = None,
    ) -> DetectionResult:
        try:
            event = await self.detections.create(
                server_id=server_id,
                actor_id=actor_id,
                signal_type=result.trigger_source,
                label=result.label,
                confidence=result.confidence,
                reasons=result.reasons,
                source=source,
                content=result.trigger_content,
                metadata={"used_ai": result.used_ai, **(metadata or {})},
            )
        except Exception:
            # The verdict is still usable; the security service retries the write.
            log.exception("Failed to record detection event for %s/%s", server_id, actor_id)
            return result
        return _with_event_id(result, event.id)


def _with_message(profile: ProfileData, content: str) -> ProfileData:
    if not content:
        return profile
    return replace(profile, recent_messages=(*profile.recent_messages, content))


def _with_event_id(result: DetectionResult, event_id: int) -> DetectionResult:
    return replace(result, detection_event_id=event_id)
