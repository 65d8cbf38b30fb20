"""
Discord client: routes chat commands to the voice controller and replies
with embeds.
"""
from __future__ import annotations

from typing import Any

import discord

from logging_setup import get_logger, Component
from observability.events import Component as EventComponent, EventEmitter
from .commands import Action, CommandInvocation, parse_command
from .controller import VoiceController, list_voice_channels
from .presentation import render_channel_list, render_help, render_outcome

logger = get_logger(Component.DISCORD_CLIENT)
emitter = EventEmitter(EventComponent.VOICE_CONTROLLER)


def build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.guilds = True
    intents.voice_states = True
    intents.guild_messages = True
    intents.message_content = True
    return intents


class BridgeClient(discord.Client):
    """discord.py client wired to one VoiceController."""

    def __init__(self, controller: VoiceController, **options: Any):
        options.setdefault("intents", build_intents())
        super().__init__(**options)
        self.controller = controller

    async def on_ready(self) -> None:
        logger.info("Server is ready", user=str(self.user), guilds=len(self.guilds))
        await self.change_presence(status=discord.Status.online)

    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None or message.author.bot or self.user is None:
            return

        invocation = parse_command(
            message.content,
            bot_user_id=self.user.id,
            guild_id=message.guild.id,
            reply_target=message.channel,
        )
        if invocation is None:
            return

        await self.route(invocation, message.guild)

    async def on_voice_state_update(self, member: Any, before: Any, after: Any) -> None:
        # Kicks, channel deletes and failed reconnects only show up here.
        if self.user is None or member.id != self.user.id or after.channel is not None:
            return
        if await self.controller.prune(member.guild.id):
            logger.info("Left voice channel remotely", guild_id=str(member.guild.id))

    async def route(self, invocation: CommandInvocation, guild: Any) -> None:
        """Run one command for a guild and send the reply embed."""
        log = logger.with_guild(invocation.guild_id)
        emitter.emit(
            "command.received",
            invocation.guild_id,
            action=invocation.action.value,
            target=invocation.target_channel,
        )
        bot_name = self.user.name if self.user else "bot"

        if invocation.action is Action.HELP:
            log.info("Displaying command help menu")
            embed = render_help(bot_name)
        elif invocation.action is Action.LIST:
            log.info("Displaying voice channel list")
            embed = render_channel_list(bot_name, list_voice_channels(guild))
        else:
            log.info("Handling voice command", action=invocation.action.value, target=invocation.target_channel)
            outcome = await self.controller.handle(invocation.action, guild, invocation.target_channel)
            if outcome is None:
                return
            embed = render_outcome(outcome)

        if invocation.reply_target is None:
            return
        try:
            await invocation.reply_target.send(embed=embed)
        except discord.HTTPException as e:
            log.warning("Failed to send reply", error=str(e), status=getattr(e, "status", None))

    async def release(self) -> None:
        """Go invisible and close the gateway connection."""
        if self.is_closed():
            return
        if self.is_ready():
            logger.info("Setting status to invisible")
            try:
                await self.change_presence(status=discord.Status.invisible)
            except (discord.DiscordException, ConnectionError) as e:
                logger.warning("Failed to set status to invisible", error=str(e))
        await self.close()
