"""
Message embeds for controller outcomes, the help menu and the channel list.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Iterable

import discord

from .errors import ConnectionErrorClassifier
from .outcomes import (
    AlreadyConnected,
    Connected,
    ConnectionFailed,
    Disconnected,
    InvalidTarget,
    NotConnected,
    Outcome,
)

EMBED_COLOR = discord.Color(0x7289DA)
FOOTER_TEXT = "Discord Audio Stream Bot"


def message_embed(title: str, content: str) -> discord.Embed:
    embed = discord.Embed(
        title=title,
        description=content,
        color=EMBED_COLOR,
        timestamp=datetime.now(timezone.utc),
    )
    embed.set_footer(text=FOOTER_TEXT)
    return embed


def _connected(outcome: Connected) -> discord.Embed:
    return message_embed("Connected", f"Now connected and streaming audio to <#{outcome.channel_id}>")


def _disconnected(outcome: Disconnected) -> discord.Embed:
    return message_embed("Disconnected", f"Now disconnected from <#{outcome.channel_id}>")


def _not_connected(outcome: NotConnected) -> discord.Embed:
    return message_embed("Error", "Cannot disconnect, not connected to any voice channel.")


def _invalid_target(outcome: InvalidTarget) -> discord.Embed:
    return message_embed("Error", f"The voice channel ({outcome.channel_ref}) is invalid or does not exist.")


def _connection_failed(outcome: ConnectionFailed) -> discord.Embed:
    hint = ConnectionErrorClassifier.get_user_message(outcome.category)
    return message_embed("Error", f"Cannot connect to voice channel ({outcome.channel_ref}). {hint}")


def _already_connected(outcome: AlreadyConnected) -> discord.Embed:
    return message_embed(
        "Error",
        f"Already streaming audio to <#{outcome.channel_id}>. Use `stop` before joining another channel.",
    )


_RENDERERS: dict[type, Callable[[Any], discord.Embed]] = {
    Connected: _connected,
    Disconnected: _disconnected,
    NotConnected: _not_connected,
    InvalidTarget: _invalid_target,
    ConnectionFailed: _connection_failed,
    AlreadyConnected: _already_connected,
}


def render_outcome(outcome: Outcome) -> discord.Embed:
    return _RENDERERS[type(outcome)](outcome)


def render_help(bot_name: str) -> discord.Embed:
    return message_embed(
        "Command Help Menu",
        "\n\n".join([
            f"`@{bot_name} help`\nDisplay the help menu (this list)",
            f"`@{bot_name} list`\nSee a list of available voice channels",
            f"`@{bot_name} play <channel id or name>`\nJoin channel and start playing audio",
            f"`@{bot_name} stop`\nStop playing audio and leave channel",
        ]),
    )


def render_channel_list(bot_name: str, channels: Iterable[Any]) -> discord.Embed:
    lines = [
        "Use the channel name or ID below with the `play` command. "
        f"Please make sure these channels are viewable by {bot_name}.\n",
    ]
    lines.extend(f"{channel.name} ➜ `{channel.id}`" for channel in channels)
    return message_embed("Voice Channels List", "\n".join(lines))
