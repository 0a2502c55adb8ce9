"""Messaging transports."""

from .telegram import TelegramChannel

__all__ = ["TelegramChannel"]
