from typing import Any

import discord
from discord import Option
from discord.commands import SlashCommandGroup
from discord.ext import commands

from .config import BURST_CHECKS, CONTENT_CHECKS, BannedTerm, ConfigStore
from .detectors import DETECTOR_TYPES
from .runtime import ChatRuntime
from .utils import parse_value

LIST_KEYS = {
    "banned_terms",
    "known_server_domains",
    "burst_checks",
    "content_checks",
    "ignore_role_ids",
    "ignore_channel_ids",
    "whitelist_user_ids",
}


def can_manage(interaction: discord.ApplicationContext) -> bool:
    return bool(interaction.guild and interaction.user.guild_permissions.manage_guild)


async def ensure_manage_and_guild(
    ctx: discord.ApplicationContext,
    config_store: ConfigStore,
) -> tuple[discord.Guild | None, Any | None]:
    if not can_manage(ctx):
        await ctx.respond("Manage Server permission is required.", ephemeral=True)
        return None, None
    if not ctx.guild:
        await ctx.respond("Run this command inside a server.", ephemeral=True)
        return None, None
    return ctx.guild, config_store.get_guild_config(ctx.guild.id)


def normalize_domain(domain: str) -> str:
    normalized = domain.lower().strip()
    if normalized.startswith("www."):
        normalized = normalized[4:]
    return normalized


def register_commands(
    bot: commands.Bot,
    config_store: ConfigStore,
    runtime: ChatRuntime,
) -> None:
    chatguard = SlashCommandGroup("chatguard", "ChatGuard moderation settings")

    def commit(guild_id: int) -> None:
        config_store.save()
        runtime.reset_moderator(guild_id)

    @chatguard.command(name="status", description="Show the current ChatGuard settings")
    async def chatguard_status(ctx: discord.ApplicationContext) -> None:
        _, config = await ensure_manage_and_guild(ctx, config_store)
        if not config:
            return

        lines = [
            f"max_cap_ratio={config.max_cap_ratio}",
            f"max_short_messages={config.max_short_messages}",
            f"min_long_message={config.min_long_message}",
            f"max_previous_messages={config.max_previous_messages}",
            f"short_spam_window_ms={config.short_spam_window_ms}",
            f"repetition_window_ms={config.repetition_window_ms}",
            f"min_velocity_score_ms={config.min_velocity_score_ms}",
            f"send_spam_warnings={config.send_spam_warnings}",
            f"ban_enabled={config.ban_enabled}",
            f"burst_checks={config.burst_checks}",
            f"content_checks={config.content_checks}",
            f"known_server_domains={config.known_server_domains}",
            f"banned_terms={len(config.banned_terms)}",
            f"log_channel_id={config.log_channel_id}",
            f"ignore_role_ids={config.ignore_role_ids}",
            f"ignore_channel_ids={config.ignore_channel_ids}",
            f"whitelist_user_ids={config.whitelist_user_ids}",
        ]
        await ctx.respond("\n".join(lines), ephemeral=True)

    @chatguard.command(name="set", description="Change a single setting")
    async def chatguard_set(
        ctx: discord.ApplicationContext,
        key: Option(str, "Setting key"),
        value: Option(str, "New value"),
    ) -> None:
        guild, config = await ensure_manage_and_guild(ctx, config_store)
        if not guild or not config:
            return

        if not hasattr(config, key):
            await ctx.respond(f"Unknown key: {key}", ephemeral=True)
            return

        if key in LIST_KEYS:
            await ctx.respond(f"Use the dedicated subcommand for {key}.", ephemeral=True)
            return

        try:
            parsed = parse_value(getattr(config, key), value)
            if key == "warning_color" and (
                len(parsed) != 3 or not all(0 <= part <= 255 for part in parsed)
            ):
                raise ValueError(value)
        except ValueError:
            await ctx.respond(f"Invalid value for {key}: {value}", ephemeral=True)
            return

        config_store.set_guild_value(guild.id, key, parsed)
        runtime.reset_moderator(guild.id)
        await ctx.respond(f"Updated: {key}={parsed}", ephemeral=True)

    log = chatguard.create_subgroup("log", "Moderation log channel")

    @log.command(name="set", description="Post moderation events to a channel")
    async def log_set(
        ctx: discord.ApplicationContext,
        channel: Option(discord.TextChannel, "Log channel"),
    ) -> None:
        guild, config = await ensure_manage_and_guild(ctx, config_store)
        if not guild or not config:
            return
        config.log_channel_id = channel.id
        config_store.save()
        await ctx.respond(f"Log channel set: {channel.mention}", ephemeral=True)

    @log.command(name="clear", description="Stop posting moderation events")
    async def log_clear(ctx: discord.ApplicationContext) -> None:
        guild, config = await ensure_manage_and_guild(ctx, config_store)
        if not guild or not config:
            return
        config.log_channel_id = None
        config_store.save()
        await ctx.respond("Log channel cleared.", ephemeral=True)

    ignore = chatguard.create_subgroup("ignore", "Channels and roles ChatGuard skips")

    @ignore.command(name="add", description="Exclude a channel or role")
    async def ignore_add(
        ctx: discord.ApplicationContext,
        role: Option(discord.Role, required=False, description="Role to exclude") = None,
        channel: Option(
            discord.TextChannel, required=False, description="Channel to exclude"
        ) = None,
    ) -> None:
        _, config = await ensure_manage_and_guild(ctx, config_store)
        if not config:
            return

        if bool(role) == bool(channel):
            await ctx.respond("Specify exactly one of role or channel.", ephemeral=True)
            return

        if role:
            if role.id not in config.ignore_role_ids:
                config.ignore_role_ids.append(role.id)
                config_store.save()
            await ctx.respond(f"Ignoring role: {role.name}", ephemeral=True)
            return

        if channel.id not in config.ignore_channel_ids:
            config.ignore_channel_ids.append(channel.id)
            config_store.save()
        await ctx.respond(f"Ignoring channel: {channel.mention}", ephemeral=True)

    @ignore.command(name="remove", description="Moderate a channel or role again")
    async def ignore_remove(
        ctx: discord.ApplicationContext,
        role: Option(discord.Role, required=False, description="Role to include") = None,
        channel: Option(
            discord.TextChannel, required=False, description="Channel to include"
        ) = None,
    ) -> None:
        _, config = await ensure_manage_and_guild(ctx, config_store)
        if not config:
            return

        if bool(role) == bool(channel):
            await ctx.respond("Specify exactly one of role or channel.", ephemeral=True)
            return

        if role:
            if role.id in config.ignore_role_ids:
                config.ignore_role_ids.remove(role.id)
                config_store.save()
            await ctx.respond(f"No longer ignoring role: {role.name}", ephemeral=True)
            return

        if channel.id in config.ignore_channel_ids:
            config.ignore_channel_ids.remove(channel.id)
            config_store.save()
        await ctx.respond(f"No longer ignoring channel: {channel.mention}", ephemeral=True)

    term = chatguard.create_subgroup("term", "Banned terms")

    @term.command(name="add", description="Add or update a banned term")
    async def term_add(
        ctx: discord.ApplicationContext,
        text: Option(str, "Term (matched case-insensitively)"),
        severity: Option(str, "Action on match", choices=["warn", "ban"], default="warn") = "warn",
        label: Option(str, "Ban reason label", required=False) = None,
    ) -> None:
        guild, config = await ensure_manage_and_guild(ctx, config_store)
        if not guild or not config:
            return

        normalized = text.strip().lower()
        if not normalized:
            await ctx.respond("The term is empty.", ephemeral=True)
            return

        config.banned_terms = [t for t in config.banned_terms if t.term.lower() != normalized]
        entry = BannedTerm(term=normalized, severity=severity)
        if label:
            entry.label = label
        config.banned_terms.append(entry)
        commit(guild.id)
        await ctx.respond(f"Banned term saved ({severity}).", ephemeral=True)

    @term.command(name="remove", description="Remove a banned term")
    async def term_remove(
        ctx: discord.ApplicationContext,
        text: Option(str, "Term"),
    ) -> None:
        guild, config = await ensure_manage_and_guild(ctx, config_store)
        if not guild or not config:
            return

        normalized = text.strip().lower()
        before = len(config.banned_terms)
        config.banned_terms = [t for t in config.banned_terms if t.term.lower() != normalized]
        if len(config.banned_terms) == before:
            await ctx.respond("That term is not on the list.", ephemeral=True)
            return
        commit(guild.id)
        await ctx.respond("Banned term removed.", ephemeral=True)

    @term.command(name="list", description="List banned terms")
    async def term_list(ctx: discord.ApplicationContext) -> None:
        _, config = await ensure_manage_and_guild(ctx, config_store)
        if not config:
            return

        if not config.banned_terms:
            await ctx.respond("No banned terms.", ephemeral=True)
            return
        lines = [f"||{t.term}|| [{t.severity}] {t.label}" for t in config.banned_terms]
        await ctx.respond("\n".join(lines), ephemeral=True)

    domain = chatguard.create_subgroup("domain", "Known server domains treated as advertising")

    @domain.command(name="add", description="Add a server domain")
    async def domain_add(
        ctx: discord.ApplicationContext,
        name: Option(str, "Domain"),
    ) -> None:
        guild, config = await ensure_manage_and_guild(ctx, config_store)
        if not guild or not config:
            return

        normalized = normalize_domain(name)
        if normalized and normalized not in config.known_server_domains:
            config.known_server_domains.append(normalized)
            commit(guild.id)
        await ctx.respond(f"Server domain added: {normalized}", ephemeral=True)

    @domain.command(name="remove", description="Remove a server domain")
    async def domain_remove(
        ctx: discord.ApplicationContext,
        name: Option(str, "Domain"),
    ) -> None:
        guild, config = await ensure_manage_and_guild(ctx, config_store)
        if not guild or not config:
            return

        normalized = normalize_domain(name)
        if normalized in config.known_server_domains:
            config.known_server_domains.remove(normalized)
            commit(guild.id)
        await ctx.respond(f"Server domain removed: {normalized}", ephemeral=True)

    detector = chatguard.create_subgroup("detector", "Enable or disable individual checks")

    @detector.command(name="disable", description="Turn a check off")
    async def detector_disable(
        ctx: discord.ApplicationContext,
        name: Option(str, "Check", choices=sorted(DETECTOR_TYPES)),
    ) -> None:
        guild, config = await ensure_manage_and_guild(ctx, config_store)
        if not guild or not config:
            return

        for checks in (config.burst_checks, config.content_checks):
            if name in checks:
                checks.remove(name)
        commit(guild.id)
        await ctx.respond(f"Disabled: {name}", ephemeral=True)

    @detector.command(name="enable", description="Turn a check back on at its default position")
    async def detector_enable(
        ctx: discord.ApplicationContext,
        name: Option(str, "Check", choices=sorted(DETECTOR_TYPES)),
    ) -> None:
        guild, config = await ensure_manage_and_guild(ctx, config_store)
        if not guild or not config:
            return

        for checks, default_order in (
            (config.burst_checks, BURST_CHECKS),
            (config.content_checks, CONTENT_CHECKS),
        ):
            if name in default_order and name not in checks:
                checks.append(name)
                checks.sort(
                    key=lambda check: default_order.index(check)
                    if check in default_order
                    else len(default_order)
                )
        commit(guild.id)
        await ctx.respond(f"Enabled: {name}", ephemeral=True)

    bot.add_application_command(chatguard)
