"""
Chat command parsing.

A command is a message whose first token mentions the bot:

    @bot help
    @bot list
    @bot play <channel id or name>
    @bot stop

A bare mention means help. Anything else is not a command.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

MENTION_RE = re.compile(r"^<@!?(\d+)>$")


class Action(str, Enum):
    PLAY = "play"
    STOP = "stop"
    LIST = "list"
    HELP = "help"


@dataclass(frozen=True)
class CommandInvocation:
    action: Action
    guild_id: str
    target_channel: Optional[str] = None
    reply_target: Any = None


def parse_command(
    content: str,
    bot_user_id: int | str,
    guild_id: int | str,
    reply_target: Any = None,
) -> Optional[CommandInvocation]:
    """
    Parse raw message text into a CommandInvocation.

    Returns None when the bot is not mentioned first, the action is unknown,
    or play has no target. The play target keeps its inner spaces so channel
    names like "Music Room" resolve.
    """
    parts = content.strip().split(maxsplit=2)
    if not parts:
        return None

    mention = MENTION_RE.match(parts[0])
    if mention is None or mention.group(1) != str(bot_user_id):
        return None

    try:
        action = Action(parts[1].lower()) if len(parts) > 1 else Action.HELP
    except ValueError:
        return None

    target = parts[2].strip() if len(parts) > 2 else None
    if action is Action.PLAY and not target:
        return None

    return CommandInvocation(
        action=action,
        guild_id=str(guild_id),
        target_channel=target if action is Action.PLAY else None,
        reply_target=reply_target,
    )
