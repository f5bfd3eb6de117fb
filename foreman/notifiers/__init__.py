from typing import TYPE_CHECKING

from foreman.notifiers.base import Notifier
from foreman.notifiers.command import CommandNotifier
from foreman.notifiers.dispatcher import NotifierDispatcher
from foreman.notifiers.telegram import TelegramNotifier

if TYPE_CHECKING:
    from foreman.config import Config

__all__ = [
    "CommandNotifier",
    "Notifier",
    "NotifierDispatcher",
    "TelegramNotifier",
    "create_notifiers",
]


def create_notifiers(config: "Config") -> dict[str, Notifier]:
    notifiers: dict[str, Notifier] = {}
    if config.notify_telegram_chat_id:
        if not config.telegram_bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN not set in environment")
        notifiers[TelegramNotifier.channel] = TelegramNotifier(
            token=config.telegram_bot_token,
            chat_id=config.notify_telegram_chat_id,
        )
    if config.notify_command:
        notifiers[CommandNotifier.channel] = CommandNotifier(command=config.notify_command)
    return notifiers
