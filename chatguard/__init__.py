from .config import BannedTerm, ChatGuardConfig, ConfigStore
from .pipeline import (
    ActionSink,
    ChatModerator,
    Decision,
    ModerationPipeline,
    Participant,
    Pass,
    Rewritten,
    Suppress,
    SuppressAndBan,
    SuppressAndWarn,
)
from .tracker import SpamRecord, SpamTracker, TrackedMessage

__all__ = [
    "BannedTerm",
    "ChatGuardConfig",
    "ConfigStore",
    "ActionSink",
    "ChatModerator",
    "Decision",
    "ModerationPipeline",
    "Participant",
    "Pass",
    "Rewritten",
    "Suppress",
    "SuppressAndBan",
    "SuppressAndWarn",
    "SpamRecord",
    "SpamTracker",
    "TrackedMessage",
]
