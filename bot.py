import logging
import os

import discord
from discord.ext import commands
from dotenv import load_dotenv

from chatguard import ConfigStore
from chatguard.commands import register_commands
from chatguard.runtime import ChatRuntime

logger = logging.getLogger("chatguard.bot")

load_dotenv()
config_path = os.getenv("CHATGUARD_CONFIG_PATH", "config.json")
config_store = ConfigStore(config_path)
config_store.load()
runtime = ChatRuntime(config_store)

intents = discord.Intents.default()
intents.message_content = True
intents.members = True

bot = commands.Bot(intents=intents)
register_commands(bot, config_store, runtime)


@bot.event
async def on_ready() -> None:
    logger.info("Logged in as %s", bot.user)


@bot.event
async def on_message(message: discord.Message) -> None:
    if message.author.bot or not message.guild:
        return

    outcome = await runtime.handle_message(message)
    if outcome.enforced:
        return

    await bot.process_commands(message)


@bot.event
async def on_member_remove(member: discord.Member) -> None:
    runtime.handle_member_remove(member)


def main() -> None:
    logging.basicConfig(
        level=os.getenv("CHATGUARD_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    token = os.getenv("DISCORD_TOKEN")
    if not token:
        raise RuntimeError("DISCORD_TOKEN is not set")
    bot.run(token)


if __name__ == "__main__":
    main()
