from __future__ import annotations

import asyncio
import datetime as dt
import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any

import discord

from .config import ChatGuardConfig, ConfigStore
from .pipeline import (
    ChatModerator,
    Decision,
    Participant,
    Rewritten,
    SuppressAndBan,
    SuppressAndWarn,
)
from .utils import make_event_id

logger = logging.getLogger(__name__)

REASON_LABELS = {
    "caps_ratio": "Too many capitals",
    "short_burst": "Short message burst",
    "exact_repetition": "Repeated message",
    "velocity": "Messages too fast",
    "link_advertising": "Server advertising",
    "banned_terms": "Banned term",
}


@dataclass
class ModerationOutcome:
    enforced: bool
    event_id: str | None = None
    delete_status: str = "not_attempted"


class DiscordActionSink:
    """Delivers warnings and bans for members whose ``Participant.context``
    is the offending ``discord.Message``."""

    def __init__(self, config: ChatGuardConfig) -> None:
        self.config = config
        self.pending: set[asyncio.Task] = set()

    def send_warning(
        self, participant: Participant, text: str, color: tuple[int, int, int]
    ) -> None:
        self._schedule(self.deliver_warning(participant.context, text, color))

    def ban_participant(
        self, participant: Participant, reason: str, authority: str | None = None
    ) -> None:
        self._schedule(self.deliver_ban(participant.context, reason, authority))

    def _schedule(self, coro: Coroutine[Any, Any, str]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self.pending.add(task)
        task.add_done_callback(self.pending.discard)

    async def deliver_warning(
        self,
        message: discord.Message,
        text: str,
        color: tuple[int, int, int],
    ) -> str:
        embed = discord.Embed(description=text, color=discord.Color.from_rgb(*color))
        try:
            await message.channel.send(content=message.author.mention, embed=embed)
            return "ok"
        except discord.Forbidden:
            logger.warning("Missing permission to warn %s", message.author)
            return "forbidden"
        except discord.HTTPException as exc:
            logger.warning("Could not warn %s: %s", message.author, exc)
            return "http_error"

    async def deliver_ban(
        self,
        message: discord.Message,
        reason: str,
        authority: str | None,
    ) -> str:
        if not self.config.ban_enabled:
            logger.info("Ban of %s skipped (ban_enabled is off): %s", message.author, reason)
            return "not_attempted"

        audit_reason = f"[{authority}] {reason}" if authority else reason
        try:
            await message.guild.ban(message.author, reason=audit_reason[:512])
            return "ok"
        except discord.Forbidden:
            logger.warning("Missing permission to ban %s", message.author)
            return "forbidden"
        except discord.HTTPException as exc:
            logger.warning("Could not ban %s: %s", message.author, exc)
            return "http_error"


class ChatRuntime:
    def __init__(self, config_store: ConfigStore) -> None:
        self.config_store = config_store
        self.moderators: dict[int, ChatModerator] = {}

    def resolve_moderator(self, guild_id: int) -> ChatModerator:
        config = self.config_store.get_guild_config(guild_id)
        moderator = self.moderators.get(guild_id)
        if moderator is None:
            moderator = ChatModerator(config, DiscordActionSink(config))
            self.moderators[guild_id] = moderator
        elif moderator.config is not config:
            # Keep history across config reloads.
            moderator = ChatModerator(config, DiscordActionSink(config), moderator.tracker)
            self.moderators[guild_id] = moderator
        return moderator

    def reset_moderator(self, guild_id: int) -> None:
        """Rebuild detectors after a config edit, keeping tracked history."""
        moderator = self.moderators.get(guild_id)
        if moderator is None:
            return
        config = self.config_store.get_guild_config(guild_id)
        self.moderators[guild_id] = ChatModerator(
            config, DiscordActionSink(config), moderator.tracker
        )

    def format_reason(self, reason: str) -> str:
        return REASON_LABELS.get(reason, reason)

    def is_exempt(self, message: discord.Message, config: ChatGuardConfig) -> bool:
        if message.channel.id in config.ignore_channel_ids:
            return True
        if message.author.id in config.whitelist_user_ids:
            return True

        author_roles = {role.id for role in getattr(message.author, "roles", [])}
        if author_roles.intersection(config.ignore_role_ids):
            return True
        return False

    async def log_moderation_event(
        self,
        message: discord.Message,
        decision: Decision,
        delete_status: str,
    ) -> str:
        config = self.config_store.get_guild_config(message.guild.id)
        event_id = make_event_id("CHAT")
        if not config.log_channel_id:
            return event_id

        channel = message.guild.get_channel(config.log_channel_id)
        if not channel or not isinstance(channel, discord.TextChannel):
            return event_id

        content_preview = message.content.strip() or "(empty)"
        if len(content_preview) > 300:
            content_preview = content_preview[:300] + "..."

        action = "suppress"
        if isinstance(decision, SuppressAndWarn):
            action = "warn"
        elif isinstance(decision, SuppressAndBan):
            action = "ban" if config.ban_enabled else "ban (disabled)"

        embed = discord.Embed(
            title="Chat Moderation",
            description="A chat line was withheld.",
            color=discord.Color.red(),
            timestamp=dt.datetime.now(dt.timezone.utc),
        )
        embed.set_author(name=str(message.author), icon_url=message.author.display_avatar.url)
        embed.add_field(name="event_id", value=event_id, inline=False)
        embed.add_field(
            name="Member",
            value=f"{message.author.mention}\n`{message.author.id}`",
            inline=True,
        )
        embed.add_field(name="Reason", value=self.format_reason(decision.reason), inline=True)
        embed.add_field(name="Action", value=action, inline=True)
        embed.add_field(name="Delete", value=delete_status, inline=True)
        embed.add_field(name="Channel", value=message.channel.mention, inline=True)
        if isinstance(decision, SuppressAndBan):
            embed.add_field(name="Ban reason", value=decision.ban_message[:1000], inline=False)
        embed.add_field(name="Content (first 300 chars)", value=content_preview, inline=False)

        try:
            await channel.send(embed=embed)
        except (discord.Forbidden, discord.HTTPException) as exc:
            logger.warning("Could not post moderation log for %s: %s", event_id, exc)

        return event_id

    async def handle_message(self, message: discord.Message) -> ModerationOutcome:
        config = self.config_store.get_guild_config(message.guild.id)
        if self.is_exempt(message, config):
            return ModerationOutcome(enforced=False)

        moderator = self.resolve_moderator(message.guild.id)
        participant = Participant(
            key=message.author.id,
            name=str(message.author),
            context=message,
        )
        decision = moderator.evaluate_chat_line(participant, message.content)

        if isinstance(decision, Rewritten):
            # Discord cannot edit another member's message; the collapsed
            # text only feeds the history.
            return ModerationOutcome(enforced=False)
        if not decision.suppressed:
            return ModerationOutcome(enforced=False)

        delete_status = "not_attempted"
        try:
            await message.delete()
            delete_status = "ok"
        except discord.Forbidden:
            delete_status = "forbidden"
        except discord.HTTPException:
            delete_status = "http_error"

        event_id = await self.log_moderation_event(message, decision, delete_status)
        return ModerationOutcome(enforced=True, event_id=event_id, delete_status=delete_status)

    def handle_member_remove(self, member: discord.Member) -> None:
        moderator = self.moderators.get(member.guild.id)
        if moderator is None:
            return
        moderator.on_disconnect(Participant(key=member.id, name=str(member)))
