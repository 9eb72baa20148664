from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass

from .config import ChatGuardConfig
from .tracker import SpamRecord
from .utils import count_capitals, count_letters, elapsed_ms

logger = logging.getLogger(__name__)

IP_RE = re.compile(r"(?:[0-9]{1,3}[.,]){3}[0-9]{1,3}")
IP_BLOCK_RE = re.compile(r"[.,]")
REPEATED_CHAR_RE = re.compile(r"(.)\1{3,}", re.IGNORECASE)


@dataclass
class ChatLine:
    """The text being moderated for a single call.

    Only the repeated-character normalizer rewrites ``text``.
    """

    text: str


@dataclass
class Violation:
    kind: str
    warning: str | None = None
    ban_reason: str | None = None
    detail: str = ""


class CapsRatioDetector:
    name = "caps_ratio"

    def __init__(self, config: ChatGuardConfig) -> None:
        self.max_ratio = config.max_cap_ratio
        self.warn = config.send_spam_warnings

    def check(self, line: ChatLine, record: SpamRecord, now: dt.datetime) -> Violation | None:
        letters = count_letters(line.text)
        if letters == 0:
            return None

        ratio = count_capitals(line.text) / letters
        if ratio <= self.max_ratio:
            return None

        warning = (
            "That message contained too many capital letters. "
            f"{ratio * 100:.0f}% caps when maximum allowed is {self.max_ratio * 100:.0f}%"
        )
        return Violation(
            kind=self.name,
            warning=warning if self.warn else None,
            detail=f"ratio={ratio:.2f}",
        )


class ShortBurstDetector:
    name = "short_burst"

    def __init__(self, config: ChatGuardConfig) -> None:
        self.min_long_message = config.min_long_message
        self.window_ms = config.short_spam_window_ms
        self.max_short_messages = config.max_short_messages
        self.warn = config.send_spam_warnings

    def check(self, line: ChatLine, record: SpamRecord, now: dt.datetime) -> Violation | None:
        short_messages = sum(
            1
            for message in record.recent
            if len(message.text) <= self.min_long_message
            and elapsed_ms(message.observed_at, now) < self.window_ms
        )
        if short_messages <= self.max_short_messages:
            return None

        return Violation(
            kind=self.name,
            warning="You have spammed too many short messages." if self.warn else None,
            detail=f"short_messages={short_messages}",
        )


class ExactRepetitionDetector:
    name = "exact_repetition"

    def __init__(self, config: ChatGuardConfig) -> None:
        self.window_ms = config.repetition_window_ms
        self.warn = config.send_spam_warnings

    def check(self, line: ChatLine, record: SpamRecord, now: dt.datetime) -> Violation | None:
        previous = record.latest()
        if previous is None:
            return None
        if previous.text.strip() != line.text.strip():
            return None
        if elapsed_ms(previous.observed_at, now) >= self.window_ms:
            return None

        return Violation(
            kind=self.name,
            warning="You have repeated yourself in a short amount of time." if self.warn else None,
        )


class VelocityDetector:
    name = "velocity"

    def __init__(self, config: ChatGuardConfig) -> None:
        self.min_score_ms = config.min_velocity_score_ms
        self.warn = config.send_spam_warnings

    def check(self, line: ChatLine, record: SpamRecord, now: dt.datetime) -> Violation | None:
        oldest = record.oldest()
        if oldest is None:
            return None

        # More messages in less time gives a lower score.
        score = elapsed_ms(oldest.observed_at, now) / len(record.recent)
        if score >= self.min_score_ms:
            return None

        warning = (
            "You have sent messages too quickly. "
            "Don't break up your messages into multiple lines."
        )
        return Violation(
            kind=self.name,
            warning=warning if self.warn else None,
            detail=f"score={score:.0f}",
        )


class RepeatedCharacterNormalizer:
    name = "repeated_characters"

    def __init__(self, config: ChatGuardConfig) -> None:
        pass

    def check(self, line: ChatLine, record: SpamRecord, now: dt.datetime) -> Violation | None:
        line.text = collapse_repeated_characters(line.text)
        return None


class LinkAdvertisingDetector:
    name = "link_advertising"

    def __init__(self, config: ChatGuardConfig) -> None:
        self.false_positive_prefixes = set(config.ip_false_positive_prefixes)
        domains = sorted(config.known_server_domains, key=len, reverse=True)
        self.domain_re = (
            re.compile("|".join(re.escape(domain) for domain in domains), re.IGNORECASE)
            if domains
            else None
        )

    def check(self, line: ChatLine, record: SpamRecord, now: dt.datetime) -> Violation | None:
        matches = self.find_addresses(line.text)
        if self.domain_re is not None:
            matches.extend(self.domain_re.findall(line.text))
        if not matches:
            return None

        joined = ", ".join(matches)
        return Violation(
            kind=self.name,
            ban_reason=f'Advertising {joined} in "{line.text}"',
            detail=joined,
        )

    def find_addresses(self, text: str) -> list[str]:
        found: list[str] = []
        for candidate in IP_RE.findall(text):
            blocks = IP_BLOCK_RE.split(candidate)
            if blocks[0] in self.false_positive_prefixes:
                continue
            if any(int(block) > 255 for block in blocks):
                continue
            found.append(candidate)
        return found


class BannedTermDetector:
    name = "banned_terms"

    def __init__(self, config: ChatGuardConfig) -> None:
        self.terms = [term for term in config.banned_terms if term.term]
        if not self.terms:
            logger.info("No banned terms configured; add some with /chatguard term add")

    def check(self, line: ChatLine, record: SpamRecord, now: dt.datetime) -> Violation | None:
        lowered = line.text.lower()
        hits = [term for term in self.terms if term.term.lower() in lowered]
        if not hits:
            return None

        for term in hits:
            if term.severity == "ban":
                return Violation(
                    kind=self.name,
                    ban_reason=f"{term.label}: {line.text}",
                    detail=term.term,
                )

        return Violation(
            kind=self.name,
            warning=(
                "That message contained words that violate the rules. "
                "If you try to bypass this automated check, you will be banned."
            ),
            detail=hits[0].term,
        )


def collapse_repeated_characters(text: str) -> str:
    return REPEATED_CHAR_RE.sub(r"\1\1", text)


DETECTOR_TYPES = {
    detector.name: detector
    for detector in (
        CapsRatioDetector,
        ShortBurstDetector,
        ExactRepetitionDetector,
        VelocityDetector,
        RepeatedCharacterNormalizer,
        LinkAdvertisingDetector,
        BannedTermDetector,
    )
}


def build_detectors(names: list[str], config: ChatGuardConfig) -> list:
    detectors = []
    for name in names:
        detector_type = DETECTOR_TYPES.get(name)
        if detector_type is None:
            logger.warning("Skipping unknown detector %r", name)
            continue
        detectors.append(detector_type(config))
    return detectors
