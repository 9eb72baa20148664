from __future__ import annotations

import json
from copy import deepcopy
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

BURST_CHECKS = [
    "caps_ratio",
    "short_burst",
    "exact_repetition",
    "velocity",
    "repeated_characters",
]
CONTENT_CHECKS = ["link_advertising", "banned_terms"]
CONFIG_VERSION = 1


@dataclass
class BannedTerm:
    term: str
    severity: str = "warn"
    label: str = "Prohibited language"

    @classmethod
    def from_value(cls, value: Any) -> "BannedTerm":
        if isinstance(value, BannedTerm):
            return value
        if isinstance(value, str):
            return cls(term=value)
        known = {key: value[key] for key in cls.__dataclass_fields__ if key in value}
        return cls(**known)


@dataclass
class ChatGuardConfig:
    max_cap_ratio: float = 0.7
    max_short_messages: int = 2
    min_long_message: int = 4
    max_previous_messages: int = 6
    short_spam_window_ms: int = 4000
    repetition_window_ms: int = 40000
    min_velocity_score_ms: int = 3450
    ip_false_positive_prefixes: list[str] = field(default_factory=lambda: ["1", "2", "3"])
    known_server_domains: list[str] = field(
        default_factory=lambda: [
            "terraria.one",
            "pedguin.com",
            "t.teeria.eu",
            "s.terraz.ru",
            "t.aurora-gaming.com",
            "terraria.tk",
            "yamahi.eu",
        ]
    )
    banned_terms: list[BannedTerm] = field(default_factory=list)
    burst_checks: list[str] = field(default_factory=lambda: list(BURST_CHECKS))
    content_checks: list[str] = field(default_factory=lambda: list(CONTENT_CHECKS))
    send_spam_warnings: bool = True
    warning_color: list[int] = field(default_factory=lambda: [255, 0, 0])
    ban_enabled: bool = True
    log_channel_id: int | None = None
    ignore_role_ids: list[int] = field(default_factory=list)
    ignore_channel_ids: list[int] = field(default_factory=list)
    whitelist_user_ids: list[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.banned_terms = [BannedTerm.from_value(item) for item in self.banned_terms]

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "ChatGuardConfig":
        # Unknown keys are dropped so files written by other versions still load.
        known = {key: values[key] for key in cls.__dataclass_fields__ if key in values}
        return cls(**known)

    def overrides(self, base: "ChatGuardConfig") -> dict[str, Any]:
        mine = asdict(self)
        theirs = asdict(base)
        return {key: value for key, value in mine.items() if theirs[key] != value}


class ConfigStore:
    """JSON-backed settings: one default config plus per-server overrides.

    Only the keys a server changed are written under ``servers``; everything
    else follows ``defaults`` when the file is read back.
    """

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self.default_config = ChatGuardConfig()
        self.guild_configs: dict[int, ChatGuardConfig] = {}

    def load(self) -> None:
        if not self.path.exists():
            self.save()
            return

        data = json.loads(self.path.read_text(encoding="utf-8"))
        sections = {"defaults", "servers", "guilds"}
        if not sections.intersection(data):
            # A bare settings object is the defaults; save() below rewrites it.
            data = {"defaults": data}

        defaults = data.get("defaults", {})
        self.default_config = ChatGuardConfig.from_dict(defaults)
        servers = data.get("servers", data.get("guilds", {}))
        self.guild_configs = {
            int(server_id): ChatGuardConfig.from_dict({**deepcopy(defaults), **changes})
            for server_id, changes in servers.items()
        }
        self.save()

    def save(self) -> None:
        payload = {
            "version": CONFIG_VERSION,
            "defaults": asdict(self.default_config),
            "servers": {
                str(server_id): cfg.overrides(self.default_config)
                for server_id, cfg in sorted(self.guild_configs.items())
            },
        }
        self.path.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

    def get_guild_config(self, guild_id: int) -> ChatGuardConfig:
        cfg = self.guild_configs.get(guild_id)
        if cfg is None:
            cfg = ChatGuardConfig.from_dict(deepcopy(asdict(self.default_config)))
            self.guild_configs[guild_id] = cfg
        return cfg

    def set_guild_value(self, guild_id: int, key: str, value: Any) -> bool:
        if key not in ChatGuardConfig.__dataclass_fields__:
            return False
        setattr(self.get_guild_config(guild_id), key, value)
        self.save()
        return True
