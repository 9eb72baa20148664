import datetime as dt
import threading

from chatguard.config import BannedTerm, ChatGuardConfig
from chatguard.pipeline import (
    ChatModerator,
    ModerationPipeline,
    Participant,
    Pass,
    Rewritten,
    Suppress,
    SuppressAndBan,
    SuppressAndWarn,
)
from chatguard.tracker import SpamTracker

BASE = dt.datetime(2026, 1, 1, tzinfo=dt.timezone.utc)
ALICE = Participant(key=1, name="alice")
BOB = Participant(key=2, name="bob")


def at(ms: int) -> dt.datetime:
    return BASE + dt.timedelta(milliseconds=ms)


class RecordingSink:
    def __init__(self) -> None:
        self.warnings: list[tuple[Participant, str, tuple[int, int, int]]] = []
        self.bans: list[tuple[Participant, str, str | None]] = []

    def send_warning(self, participant, text, color) -> None:
        self.warnings.append((participant, text, color))

    def ban_participant(self, participant, reason, authority=None) -> None:
        self.bans.append((participant, reason, authority))


def test_clean_message_passes_and_is_recorded() -> None:
    pipeline = ModerationPipeline(ChatGuardConfig())

    decision = pipeline.evaluate(ALICE, "Hello there", BASE)

    assert decision == Pass()
    assert not decision.suppressed
    assert pipeline.tracker.get_or_create(ALICE.key).latest().text == "Hello there"


def test_empty_message_passes_without_tracking() -> None:
    pipeline = ModerationPipeline(ChatGuardConfig())

    assert pipeline.evaluate(ALICE, "", BASE) == Pass()
    assert ALICE.key not in pipeline.tracker


def test_shouting_is_suppressed_with_warning_and_not_recorded() -> None:
    pipeline = ModerationPipeline(ChatGuardConfig())

    decision = pipeline.evaluate(ALICE, "HELLO", BASE)

    assert isinstance(decision, SuppressAndWarn)
    assert decision.reason == "caps_ratio"
    assert decision.suppressed
    assert len(pipeline.tracker.get_or_create(ALICE.key).recent) == 0


def test_silent_mode_suppresses_without_warning() -> None:
    pipeline = ModerationPipeline(ChatGuardConfig(send_spam_warnings=False))

    assert pipeline.evaluate(ALICE, "HELLO", BASE) == Suppress(reason="caps_ratio")


def test_repeated_line_within_window() -> None:
    pipeline = ModerationPipeline(ChatGuardConfig())

    assert pipeline.evaluate(ALICE, "hi there", at(0)) == Pass()
    decision = pipeline.evaluate(ALICE, "hi there", at(1000))

    assert isinstance(decision, SuppressAndWarn)
    assert decision.reason == "exact_repetition"


def test_repeated_line_outside_window_passes() -> None:
    pipeline = ModerationPipeline(ChatGuardConfig())

    assert pipeline.evaluate(ALICE, "hi there", at(0)) == Pass()
    assert pipeline.evaluate(ALICE, "hi there", at(41000)) == Pass()


def test_rapid_lines_trip_velocity() -> None:
    pipeline = ModerationPipeline(ChatGuardConfig())

    assert pipeline.evaluate(ALICE, "first line", at(0)) == Pass()
    decision = pipeline.evaluate(ALICE, "second line", at(1000))

    assert isinstance(decision, SuppressAndWarn)
    assert decision.reason == "velocity"


def test_short_burst_trips_on_fourth_short_message() -> None:
    config = ChatGuardConfig(burst_checks=["short_burst", "repeated_characters"])
    pipeline = ModerationPipeline(config)

    results = [
        pipeline.evaluate(ALICE, text, at(i * 500))
        for i, text in enumerate(["a", "b", "c", "d", "e"])
    ]

    assert results[:3] == [Pass(), Pass(), Pass()]
    assert all(isinstance(result, SuppressAndWarn) for result in results[3:])
    assert results[3].reason == "short_burst"


def test_collapsed_text_is_returned_and_recorded() -> None:
    pipeline = ModerationPipeline(ChatGuardConfig())

    decision = pipeline.evaluate(ALICE, "aaaaaaaa", BASE)

    assert decision == Rewritten(text="aa")
    assert pipeline.tracker.get_or_create(ALICE.key).latest().text == "aa"


def test_advertising_is_banned_but_still_recorded() -> None:
    pipeline = ModerationPipeline(ChatGuardConfig())

    decision = pipeline.evaluate(ALICE, "join 192.168.1.1 now", BASE)

    assert isinstance(decision, SuppressAndBan)
    assert decision.reason == "link_advertising"
    assert "192.168.1.1" in decision.ban_message
    assert len(pipeline.tracker.get_or_create(ALICE.key).recent) == 1


def test_version_string_is_not_advertising() -> None:
    pipeline = ModerationPipeline(ChatGuardConfig())

    assert pipeline.evaluate(ALICE, "update to 1.4.2.0", BASE) == Pass()


def test_content_checks_see_collapsed_text() -> None:
    config = ChatGuardConfig(banned_terms=[BannedTerm(term="noob", severity="warn")])
    pipeline = ModerationPipeline(config)

    decision = pipeline.evaluate(ALICE, "noooooob", BASE)

    assert isinstance(decision, SuppressAndWarn)
    assert decision.reason == "banned_terms"


def test_burst_violation_skips_content_checks() -> None:
    config = ChatGuardConfig(banned_terms=[BannedTerm(term="hello", severity="ban")])
    pipeline = ModerationPipeline(config)

    decision = pipeline.evaluate(ALICE, "HELLO", BASE)

    assert isinstance(decision, SuppressAndWarn)
    assert decision.reason == "caps_ratio"


def test_disabled_detector_is_not_run() -> None:
    config = ChatGuardConfig(
        burst_checks=["short_burst", "exact_repetition", "velocity", "repeated_characters"]
    )
    pipeline = ModerationPipeline(config)

    assert pipeline.evaluate(ALICE, "HELLO", BASE) == Pass()


def test_senders_have_independent_history() -> None:
    pipeline = ModerationPipeline(ChatGuardConfig())

    assert pipeline.evaluate(ALICE, "hi there", at(0)) == Pass()
    assert pipeline.evaluate(BOB, "hi there", at(100)) == Pass()


def test_moderator_delivers_warning() -> None:
    sink = RecordingSink()
    moderator = ChatModerator(ChatGuardConfig(), sink)

    moderator.evaluate_chat_line(ALICE, "HELLO", BASE)

    assert len(sink.warnings) == 1
    participant, text, color = sink.warnings[0]
    assert participant is ALICE
    assert text.startswith("That message contained too many capital letters.")
    assert color == (255, 0, 0)
    assert sink.bans == []


def test_moderator_bans_as_system() -> None:
    sink = RecordingSink()
    config = ChatGuardConfig(banned_terms=[BannedTerm(term="word", severity="ban")])
    moderator = ChatModerator(config, sink)

    decision = moderator.evaluate_chat_line(ALICE, "a bad word", BASE)

    assert isinstance(decision, SuppressAndBan)
    assert sink.bans == [(ALICE, "Prohibited language: a bad word", "System")]
    assert sink.warnings == []


def test_moderator_pass_has_no_side_effects() -> None:
    sink = RecordingSink()
    moderator = ChatModerator(ChatGuardConfig(), sink)

    assert moderator.evaluate_chat_line(ALICE, "Good game everyone", BASE) == Pass()
    assert sink.warnings == []
    assert sink.bans == []


def test_disconnect_forgets_history() -> None:
    moderator = ChatModerator(ChatGuardConfig(), RecordingSink())

    moderator.evaluate_chat_line(ALICE, "hi there", at(0))
    moderator.on_disconnect(ALICE)
    moderator.on_disconnect(ALICE)

    assert ALICE.key not in moderator.tracker
    assert moderator.evaluate_chat_line(ALICE, "hi there", at(1000)) == Pass()


def test_injected_empty_tracker_is_kept() -> None:
    tracker = SpamTracker()
    moderator = ChatModerator(ChatGuardConfig(), RecordingSink(), tracker)

    moderator.evaluate_chat_line(ALICE, "hello there", BASE)

    assert moderator.tracker is tracker
    assert len(tracker) == 1


def test_injected_tracker_takes_configured_history_bound() -> None:
    tracker = SpamTracker(max_history=6)
    config = ChatGuardConfig(max_previous_messages=2, burst_checks=[], content_checks=[])
    pipeline = ModerationPipeline(config, tracker)

    for i in range(5):
        pipeline.evaluate(ALICE, f"line {i}", at(i * 10000))

    assert tracker.max_history == 2
    assert [m.text for m in tracker.get_or_create(ALICE.key).recent] == ["line 3", "line 4"]


def test_concurrent_lines_from_one_sender_keep_history_consistent() -> None:
    config = ChatGuardConfig(burst_checks=["repeated_characters"], content_checks=[])
    pipeline = ModerationPipeline(config)
    decisions = []
    sent = {f"thread {t} line {i}" for t in range(8) for i in range(50)}

    def send(thread_id: int) -> None:
        for i in range(50):
            decisions.append(pipeline.evaluate(ALICE, f"thread {thread_id} line {i}"))

    threads = [threading.Thread(target=send, args=(t,)) for t in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    recent = list(pipeline.tracker.get_or_create(ALICE.key).recent)
    texts = [message.text for message in recent]
    assert len(decisions) == 400
    assert all(decision == Pass() for decision in decisions)
    assert len(recent) == config.max_previous_messages
    assert len(set(texts)) == len(texts)
    assert set(texts) <= sent
