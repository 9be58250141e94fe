"""Notification delivery: event formatting and the Telegram client."""

from playwatch.notify.formatting import Message, render_events, split_message
from playwatch.notify.telegram import NotifyError, TelegramNotifier

__all__ = ["Message", "NotifyError", "TelegramNotifier", "render_events", "split_message"]
