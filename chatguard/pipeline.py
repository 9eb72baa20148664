from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Hashable
from dataclasses import dataclass
from typing import Any, Protocol

from .config import ChatGuardConfig
from .detectors import ChatLine, Violation, build_detectors
from .tracker import SpamRecord, SpamTracker

logger = logging.getLogger(__name__)

SYSTEM_AUTHORITY = "System"


@dataclass(frozen=True)
class Participant:
    key: Hashable
    name: str
    # Host-owned handle (e.g. the originating message); never read by the core.
    context: Any = None


@dataclass(frozen=True)
class Pass:
    suppressed = False


@dataclass(frozen=True)
class Rewritten:
    text: str
    suppressed = False


@dataclass(frozen=True)
class Suppress:
    reason: str
    suppressed = True


@dataclass(frozen=True)
class SuppressAndWarn:
    reason: str
    message: str
    suppressed = True


@dataclass(frozen=True)
class SuppressAndBan:
    reason: str
    ban_message: str
    suppressed = True


Decision = Pass | Rewritten | Suppress | SuppressAndWarn | SuppressAndBan


class ActionSink(Protocol):
    def send_warning(
        self, participant: Participant, text: str, color: tuple[int, int, int]
    ) -> None:
        ...

    def ban_participant(
        self, participant: Participant, reason: str, authority: str | None = None
    ) -> None:
        ...


def decision_for(violation: Violation) -> Decision:
    if violation.ban_reason:
        return SuppressAndBan(reason=violation.kind, ban_message=violation.ban_reason)
    if violation.warning:
        return SuppressAndWarn(reason=violation.kind, message=violation.warning)
    return Suppress(reason=violation.kind)


class ModerationPipeline:
    """Runs the ordered detector lists against one sender's chat line.

    The burst group reads the sender's history and decides whether the line
    is recorded; the content group only inspects the (normalized) text.
    """

    def __init__(self, config: ChatGuardConfig, tracker: SpamTracker | None = None) -> None:
        self.config = config
        if tracker is None:
            tracker = SpamTracker(max_history=config.max_previous_messages)
        elif tracker.max_history != config.max_previous_messages:
            tracker.resize(config.max_previous_messages)
        self.tracker = tracker
        self.burst_detectors = build_detectors(config.burst_checks, config)
        self.content_detectors = build_detectors(config.content_checks, config)

    def evaluate(
        self,
        participant: Participant,
        text: str,
        now: dt.datetime | None = None,
    ) -> Decision:
        if not text:
            return Pass()

        now = now or dt.datetime.now(dt.timezone.utc)
        record = self.tracker.get_or_create(participant.key)
        with record.lock:
            return self._evaluate_locked(participant, record, text, now)

    def _evaluate_locked(
        self,
        participant: Participant,
        record: SpamRecord,
        text: str,
        now: dt.datetime,
    ) -> Decision:
        line = ChatLine(text=text)

        violation = self._first_violation(self.burst_detectors, line, record, now)
        if violation is None:
            record.append(line.text, now)
            violation = self._first_violation(self.content_detectors, line, record, now)

        if violation is not None:
            logger.info(
                "%s violated %s%s",
                participant.name,
                violation.kind,
                f" ({violation.detail})" if violation.detail else "",
            )
            return decision_for(violation)

        if line.text != text:
            return Rewritten(text=line.text)
        return Pass()

    def _first_violation(
        self,
        detectors: list,
        line: ChatLine,
        record: SpamRecord,
        now: dt.datetime,
    ) -> Violation | None:
        for detector in detectors:
            violation = detector.check(line, record, now)
            if violation is not None:
                return violation
        return None


class ChatModerator:
    """Entry point for a host: evaluate chat lines and forget disconnected senders."""

    def __init__(
        self,
        config: ChatGuardConfig,
        sink: ActionSink,
        tracker: SpamTracker | None = None,
    ) -> None:
        self.config = config
        self.sink = sink
        self.pipeline = ModerationPipeline(config, tracker)

    @property
    def tracker(self) -> SpamTracker:
        return self.pipeline.tracker

    def evaluate_chat_line(
        self,
        participant: Participant,
        text: str,
        now: dt.datetime | None = None,
    ) -> Decision:
        decision = self.pipeline.evaluate(participant, text, now)
        self.apply(participant, decision)
        return decision

    def apply(self, participant: Participant, decision: Decision) -> None:
        if isinstance(decision, SuppressAndWarn):
            color = tuple(self.config.warning_color)
            self.sink.send_warning(participant, decision.message, color)
        elif isinstance(decision, SuppressAndBan):
            logger.info("Banning %s: %s", participant.name, decision.ban_message)
            self.sink.ban_participant(participant, decision.ban_message, SYSTEM_AUTHORITY)

    def on_disconnect(self, participant: Participant) -> None:
        self.tracker.remove(participant.key)
